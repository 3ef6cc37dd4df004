import logging
import threading

from extron.conduit.base import Conduit, ConduitError
from extron.matrix.mapping import MappingTable, MappingType, OutputMapping
from extron.matrix.parser import FirmwareChanged, LockModeChanged, TieChanged, TopologyReceived, answers_command, \
    parse_response
from extron.matrix.state import LockMode, MatrixDeviceState
from extron.protocol.connection import CommunicatorError, ConnectionState, DeviceCommunicator, DeviceEvent, \
    check_range
from extron.protocol.correlation import CommandTicket

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY = 0.15


class BootstrapSent(DeviceEvent):
    """ every output has been queried for its video and audio tie """

    def __init__(self, outputs: int):
        self.outputs = outputs


class MatrixSwitcherCommunicator(DeviceCommunicator):
    """
    Communicates with a matrix switcher, such as the Extron Crosspoint, which can tie any input to any
    output, separately for video and audio.

    Once the identify response reports the number of inputs and outputs, every output is queried
    for its current video and audio tie, pausing settle_delay seconds after each query to give the
    device time to process it. The communicator is ready when all the queries have been sent and
    every output has reported both ties.

    :param settle_delay: seconds to wait after each bootstrap query
    """

    def __init__(self, conduit: Conduit, settle_delay=DEFAULT_SETTLE_DELAY, **kwargs):
        super().__init__(conduit, **kwargs)
        self.settle_delay = settle_delay
        self.device_state = MatrixDeviceState()
        self.mapping_table = MappingTable()
        self._unreported = set()
        self._bootstrap_sent = False
        self._bootstrap_abort = threading.Event()
        self._bootstrap_thread = None
        self._appliers = {
            TopologyReceived: self._apply_topology,
            TieChanged: self._apply_tie,
            FirmwareChanged: self._apply_firmware,
            LockModeChanged: self._apply_lock_mode,
            BootstrapSent: self._apply_bootstrap_sent,
        }

    @property
    def inputs(self) -> int:
        return self.device_state.inputs

    @property
    def outputs(self) -> int:
        return self.device_state.outputs

    @property
    def firmware_version(self) -> str:
        return self.device_state.firmware

    @property
    def lock_mode(self) -> LockMode:
        return self.device_state.lock_mode

    @property
    def mappings(self) -> dict:
        """ a snapshot of the ties, as a dict from output number to OutputMapping """
        return self.mapping_table.snapshot()

    def mapping(self, output: int) -> OutputMapping:
        return self.mapping_table[output]

    def map_input_to_output(self, input: int, output: int, mapping_type: MappingType) -> CommandTicket:
        """
        Ties an input to an output. Input 0 removes the tie.
        """
        check_range("input", input, self.inputs)
        check_range("output", output, self.outputs)
        return self.write("%d*%d%s" % (input, output, mapping_type.value))

    def query_output(self, output: int, mapping_type: MappingType) -> CommandTicket:
        """ asks which input is tied to the output's video or audio """
        if mapping_type is MappingType.All:
            raise ValueError("query the video and audio ties separately")
        check_range("output", output, self.outputs)
        return self.write("%d%s" % (output, mapping_type.value))

    def query_firmware(self) -> CommandTicket:
        return self.write("Q")

    def query_lock_mode(self) -> CommandTicket:
        return self.write("X")

    def close_connection(self):
        self._stop_bootstrap()
        super().close_connection()

    def _stop_bootstrap(self):
        self._bootstrap_abort.set()
        thread = self._bootstrap_thread
        self._bootstrap_thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(self.join_timeout)

    def _start_bootstrap(self, outputs: int):
        self._stop_bootstrap()
        abort = self._bootstrap_abort = threading.Event()
        thread = threading.Thread(target=self._bootstrap, args=(outputs, abort),
                                  name=type(self).__name__ + "-bootstrap")
        thread.daemon = True
        self._bootstrap_thread = thread
        thread.start()

    def _bootstrap(self, outputs: int, abort: threading.Event):
        """ queries the ties of each output. Runs on its own thread so the dispatcher keeps applying responses. """
        logger.info("querying ties of %d outputs on %s", outputs, self.conduit.target)
        try:
            for output in range(1, outputs + 1):
                for mapping_type in (MappingType.Video, MappingType.Audio):
                    if abort.is_set():
                        return
                    self.query_output(output, mapping_type)
                    if abort.wait(self.settle_delay):
                        return
        except (CommunicatorError, ConduitError) as e:
            logger.warning("stopped querying ties on %s: %s", self.conduit.target, e)
            return
        self._parsed.fire(BootstrapSent(outputs))

    def _reset_state(self):
        self._stop_bootstrap()
        self.device_state = MatrixDeviceState()
        self.mapping_table = MappingTable()
        self._unreported = set()
        self._bootstrap_sent = False

    def _claims_ticket(self, command, line):
        return answers_command(command, line)

    def _parse(self, command, line):
        return parse_response(command, line)

    def _apply(self, event: DeviceEvent):
        apply = self._appliers.get(type(event))
        if apply is None:
            logger.debug("no state change for %s", event)
        else:
            apply(event)

    def _apply_topology(self, event: TopologyReceived):
        logger.info("identified %s with %d inputs and %d outputs", self.conduit.target, event.inputs, event.outputs)
        self._ready.clear()
        self._state = ConnectionState.Identifying
        self.device_state.inputs = event.inputs
        self.device_state.outputs = event.outputs
        self.mapping_table.allocate(event.outputs)
        self._unreported = {(output, mapping_type) for output in range(1, event.outputs + 1)
                            for mapping_type in (MappingType.Video, MappingType.Audio)}
        self._bootstrap_sent = False
        self._start_bootstrap(event.outputs)

    def _apply_tie(self, event: TieChanged):
        if not self.mapping_table.apply_tie(event.output, event.input, event.mapping_type):
            return
        if event.mapping_type.includes_video:
            self._unreported.discard((event.output, MappingType.Video))
        if event.mapping_type.includes_audio:
            self._unreported.discard((event.output, MappingType.Audio))
        self._check_ready()

    def _apply_firmware(self, event: FirmwareChanged):
        self.device_state.firmware = event.version

    def _apply_lock_mode(self, event: LockModeChanged):
        self.device_state.lock_mode = event.lock_mode

    def _apply_bootstrap_sent(self, event: BootstrapSent):
        if event.outputs == self.outputs:
            self._bootstrap_sent = True
            self._check_ready()

    def _check_ready(self):
        if self._bootstrap_sent and not self._unreported:
            self._set_ready()
