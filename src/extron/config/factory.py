"""
Builds conduits and communicators from the `extron` configuration.
"""
import logging
import sys
import time

from configobj import Section

from extron.conduit.base import Conduit, LoggingConduit
from extron.conduit.serial_conduit import SerialConduit, create_serial
from extron.conduit.socket_conduit import SocketConduit
from extron.config.config import EXTRON_CONFIG, apply_conf, load_config
from extron.linear.communicator import LinearSwitcherCommunicator
from extron.matrix.communicator import MatrixSwitcherCommunicator
from extron.protocol.connection import DeviceCommunicator

logger = logging.getLogger(__name__)

communicator_kinds = {
    'linear': LinearSwitcherCommunicator,
    'matrix': MatrixSwitcherCommunicator,
}


def create_conduit(config: Section) -> Conduit:
    """
    Creates a closed conduit for the connection described in the configuration.
    """
    mode = config['mode']
    if mode == 'serial':
        ser = create_serial(config['serial']['port'], config['read_timeout'], config['write_timeout'])
        conduit = SerialConduit(ser)
    elif mode == 'telnet':
        telnet = config['telnet']
        conduit = SocketConduit(telnet['host'], telnet['port'], telnet['password'] or None, config['read_timeout'])
    else:
        raise ValueError("unknown connection mode %s" % mode)
    logger.debug("created %s conduit for %s", mode, conduit.target)
    return LoggingConduit(conduit)


def create_communicator(kind, config: Section = None, conduit: Conduit = None) -> DeviceCommunicator:
    """
    Creates a communicator for a linear or matrix switcher.
    :param kind: 'linear' or 'matrix'
    :param config: the configuration to use. Defaults to the loaded `extron` configuration.
    :param conduit: the conduit to the device. Defaults to one created from the configuration.
    :return: the communicator, with its connection opened when auto_open is configured.
    """
    factory = communicator_kinds.get(kind)
    if factory is None:
        raise ValueError("unknown switcher kind %s, expected one of %s" % (kind, ", ".join(sorted(communicator_kinds))))
    if config is None:
        config = load_config(EXTRON_CONFIG)
    if conduit is None:
        conduit = create_conduit(config)
    communicator = factory(conduit)
    apply_conf(config, communicator)
    if config['auto_open']:
        communicator.open_connection()
    return communicator


def monitor(kind='matrix'):
    """ A helper function for manual testing. Connects as configured and logs every device event. """
    logging.root.setLevel(logging.INFO)
    logging.root.addHandler(logging.StreamHandler())

    communicator = create_communicator(kind)
    communicator.events += lambda event: logger.info("event %s", event)
    communicator.register_error_callback(lambda message: logger.warning("device error: %s", message))
    if not communicator.is_connection_open:
        communicator.open_connection()
    try:
        logger.info("%s ready: %s", kind, communicator.wait_until_ready(30))
        while True:
            time.sleep(1)
    finally:
        communicator.dispose()


if __name__ == '__main__':
    monitor(*sys.argv[1:2])
