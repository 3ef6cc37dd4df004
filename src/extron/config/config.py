"""
Loads configuration from layered configobj files, validated against a schema.

A configuration called `name` is assembled from these files, later files overriding earlier ones:

- `name.default.cfg` the defaults shipped alongside the code
- `name.<os>.cfg` platform specific settings, where <os> is windows, linux or osx
- `name.cfg` the local configuration
- `~/name.cfg` the user's own overrides

The result is validated against `name.schema.cfg`, which also supplies defaults and converts values
to their types.
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, Section, flatten_errors
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'

# The directory holding the configuration shipped with the package
package_config_dir = os.path.dirname(__file__)

EXTRON_CONFIG = 'extron'


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('extron', 'schema')
    'extron.schema'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory=None):
    """
    Determines the location of a config file in the given directory.
    """
    return os.path.join(directory or package_config_dir, name + config_extension)


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, flavor=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name. A missing file gives an empty configuration.
    :param name:    The name of the base configuration
    :param flavor:  The name of the specialization.
    :return: The ConfigObj for the configuration file.
    """
    file = config_filename(config_flavor(name, flavor), directory)
    return load_config_file_base(file, False)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def user_config_file(name):
    return os.path.expanduser('~/' + name + config_extension)


def load_config(name=EXTRON_CONFIG, directory=None, schema_directory=None):
    """
    Loads and validates all the configuration files that relate to the given name.
    :param name: the base name of the configuration files
    :param directory: the location of the configuration files. Defaults to the package directory.
    :param schema_directory: the location of the schema. Defaults to the configuration directory.
    :return: the validated configuration
    """
    directory = directory or package_config_dir
    schema = config_filename(config_flavor(name, 'schema'), schema_directory or directory)
    config = ConfigObj(configspec=schema if os.path.exists(schema) else None)
    config.merge(config_flavor_file(name, directory, 'default'))
    config.merge(config_flavor_file(name, directory, os_name()))
    config.merge(config_flavor_file(name, directory))
    config.merge(load_config_file_base(user_config_file(name), must_exist=False))

    if config.configspec is None:
        return config
    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        problems = []
        for sections, key, error in flatten_errors(config, result):
            location = '.'.join(sections + [key] if key is not None else sections)
            problems.append("%s: %s" % (location, error or "missing"))
        raise ConfigObjError("the config file %s failed validation %s" % (name, ", ".join(problems)))
    return config


def fetch_conf_path(conf: Section, path):
    """
    Retrieves the named configuration section
    :param conf:    The root configuration
    :param path:    An iterable that lists the names of the config to resolve
    :return: The configuration object identified by the path, or None if there is no such section
    """
    for p in path:
        conf = conf.get(p, None)
        if conf is None:
            return None
    return conf


def apply_conf_path(conf: Section, name_parts, target):
    """
    Applies a configuration path to a given target object
    :param conf:        The root configuration object
    :param name_parts:  The path of the configuration to apply
    :param target:      The target object that receives the configured values
    """
    conf = fetch_conf_path(conf, name_parts)
    if conf:
        apply_conf(conf, target)


def apply_conf(conf, target):
    """
    Applies the values in a configuration section to a target object, by setting each attribute the
    target already has to the value with the same name. Nested sections are not applied.
    """
    for k, v in conf.items():
        if not isinstance(v, Section) and hasattr(target, k):
            setattr(target, k, v)


def configure_module(module, config_name, directory=None):
    """
    Applies configuration to the global variables of a module. The values are read from the
    section path that matches the module's qualified name, so values for `extron.conduit.x` are
    found in section [extron] [[conduit]] [[[x]]].
    """
    conf = load_config(config_name, directory or os.path.dirname(module.__file__))
    apply_conf_path(conf, module.__name__.split('.'), module)
