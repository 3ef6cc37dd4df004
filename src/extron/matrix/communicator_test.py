import asyncio
import unittest
from unittest.mock import Mock

import timeout_decorator
from hamcrest import assert_that, calling, has_length, is_, raises

from extron.conduit.base_test import FakeConduit
from extron.matrix.communicator import MatrixSwitcherCommunicator
from extron.matrix.mapping import MappingType, OutputMapping
from extron.matrix.parser import TIE_COMMAND_PATTERN
from extron.matrix.state import LockMode
from extron.protocol.connection import CommandRangeError, ConnectionState
from extron.protocol.loop_test import debug_timeout, wait_for

tie_names = {"!": "All", "&": "RGB", "%": "Vid", "$": "Aud"}


class FakeCrosspoint:
    """
    Answers commands the way a Crosspoint switcher does. Tie queries are answered with the input
    number. Tie commands are answered verbosely (Out2 In3 Vid), or with just the input number
    when verbose is False.
    """

    def __init__(self, inputs=8, outputs=4, verbose=True, ties=None, silent=()):
        self.inputs = inputs
        self.outputs = outputs
        self.verbose = verbose
        self.ties = {o: [0, 0] for o in range(1, outputs + 1)}
        self.ties.update(ties or {})
        self.silent = silent

    def __call__(self, command):
        if command in self.silent:
            return []
        if command.upper() == "I":
            return ["V%dX%d A%dX%d" % (self.inputs, self.outputs, self.inputs, self.outputs)]
        if command.upper() == "Q":
            return ["1.337"]
        if command.upper() == "X":
            return ["2"]
        match = TIE_COMMAND_PATTERN.fullmatch(command)
        if not match:
            return ["E10"]
        input, output, kind = match.groups()
        output = int(output)
        if output not in self.ties:
            return ["E12"]
        if input is None:
            return ["%02d" % self.ties[output][0 if kind in "&%" else 1]]
        input = int(input)
        if input > self.inputs:
            return ["E01"]
        if kind in "!&%":
            self.ties[output][0] = input
        if kind in "!$":
            self.ties[output][1] = input
        if self.verbose:
            return ["Out%d In%d %s" % (output, input, tie_names[kind])]
        return ["%d" % input]


class MatrixSwitcherCommunicatorTest(unittest.TestCase):
    """ drives the communicator on the test thread. Only the bootstrap queries run on their own thread. """

    def setUp(self):
        self.device = FakeCrosspoint(ties={1: [1, 1], 3: [5, 6]})
        self.conduit = FakeConduit(responder=self.device)
        self.conduit.open()
        self.sut = MatrixSwitcherCommunicator(self.conduit, settle_delay=0)

    def tearDown(self):
        self.sut.close_connection()

    def pump(self):
        """ reads and applies every line the fake device has sent """
        while not self.conduit.lines.empty():
            self.sut.handle_line(self.conduit.read_line())
        self.sut.publish()

    def bootstrap(self):
        self.sut.identify()
        self.pump()
        self.sut._bootstrap_thread.join(2)
        self.pump()

    def test_initial_state(self):
        assert_that(self.sut.inputs, is_(0))
        assert_that(self.sut.outputs, is_(0))
        assert_that(self.sut.mappings, is_({}))
        assert_that(self.sut.lock_mode, is_(LockMode.Unlocked))
        assert_that(self.sut.is_ready, is_(False))

    def test_identify_allocates_zeroed_mappings(self):
        self.conduit.responder = FakeCrosspoint()
        self.sut.identify()
        self.pump()
        assert_that(self.sut.inputs, is_(8))
        assert_that(self.sut.outputs, is_(4))
        assert_that(self.sut.mappings, is_({o: OutputMapping(o, 0, 0) for o in range(1, 5)}))
        assert_that(self.sut.state, is_(ConnectionState.Identifying))

    def test_bootstrap_queries_every_output(self):
        self.bootstrap()
        assert_that(self.conduit.written, is_(["I", "1%", "1$", "2%", "2$", "3%", "3$", "4%", "4$"]))
        assert_that(self.sut.is_ready, is_(True))
        assert_that(self.sut.state, is_(ConnectionState.Ready))
        assert_that(self.sut.mappings, has_length(self.sut.outputs))
        assert_that(self.sut.mapping(1), is_(OutputMapping(1, 1, 1)))
        assert_that(self.sut.mapping(3), is_(OutputMapping(3, 5, 6)))
        assert_that(self.sut.mapping(4), is_(OutputMapping(4, 0, 0)))

    def test_not_ready_until_every_output_reports_both_ties(self):
        self.conduit.responder = FakeCrosspoint(silent=("4$",))
        self.bootstrap()
        assert_that(self.sut.is_ready, is_(False))
        assert_that(self.sut.wait_until_ready(0.01), is_(False))
        self.conduit.push("Out4 In2 Aud")
        self.pump()
        assert_that(self.sut.is_ready, is_(True))

    def test_map_input_to_output_writes_tie(self):
        self.bootstrap()
        self.sut.map_input_to_output(3, 2, MappingType.Video)
        assert_that(self.conduit.written[-1], is_("3*2%"))
        self.sut.map_input_to_output(3, 2, MappingType.Audio)
        assert_that(self.conduit.written[-1], is_("3*2$"))
        self.sut.map_input_to_output(0, 2, MappingType.All)
        assert_that(self.conduit.written[-1], is_("0*2!"))

    def test_map_input_to_output_range(self):
        self.bootstrap()
        written = len(self.conduit.written)
        for input, output in ((-1, 1), (9, 1), (1, -1), (1, 5)):
            assert_that(calling(self.sut.map_input_to_output).with_args(input, output, MappingType.All),
                        raises(CommandRangeError))
        assert_that(self.conduit.written, has_length(written))
        self.sut.map_input_to_output(8, 4, MappingType.All)
        self.sut.map_input_to_output(0, 0, MappingType.All)
        assert_that(self.conduit.written, has_length(written + 2))

    def test_ties_update_mappings(self):
        self.bootstrap()
        self.sut.map_input_to_output(3, 2, MappingType.All)
        self.pump()
        assert_that(self.sut.mapping(2), is_(OutputMapping(2, 3, 3)))
        self.sut.map_input_to_output(4, 2, MappingType.Video)
        self.pump()
        assert_that(self.sut.mapping(2), is_(OutputMapping(2, 4, 3)))
        self.sut.map_input_to_output(7, 2, MappingType.Audio)
        self.pump()
        assert_that(self.sut.mapping(2), is_(OutputMapping(2, 4, 7)))

    def test_verbose_and_terse_confirmations_agree(self):
        results = []
        for verbose in (True, False):
            self.conduit.responder = FakeCrosspoint(verbose=verbose)
            self.conduit.written.clear()
            self.sut._reset_state()
            self.bootstrap()
            for input, output, mapping_type in ((3, 2, MappingType.All), (5, 2, MappingType.Video),
                                                (6, 4, MappingType.Audio), (1, 1, MappingType.All),
                                                (0, 1, MappingType.Audio)):
                self.sut.map_input_to_output(input, output, mapping_type)
            self.pump()
            results.append(self.sut.mappings)
        assert_that(results[0], is_(results[1]))
        assert_that(results[0][2], is_(OutputMapping(2, 5, 3)))
        assert_that(results[0][1], is_(OutputMapping(1, 1, 0)))

    def test_queries(self):
        self.bootstrap()
        self.sut.query_firmware()
        self.sut.query_lock_mode()
        self.pump()
        assert_that(self.conduit.written[-2:], is_(["Q", "X"]))
        assert_that(self.sut.firmware_version, is_("1.337"))
        assert_that(self.sut.lock_mode, is_(LockMode.Advanced))

    def test_query_output(self):
        self.bootstrap()
        self.sut.query_output(3, MappingType.Video)
        self.sut.query_output(3, MappingType.Audio)
        assert_that(self.conduit.written[-2:], is_(["3%", "3$"]))
        assert_that(calling(self.sut.query_output).with_args(3, MappingType.All), raises(ValueError))
        assert_that(calling(self.sut.query_output).with_args(5, MappingType.Video), raises(CommandRangeError))

    def test_error_invokes_callback(self):
        callback = Mock()
        self.sut.register_error_callback(callback)
        self.bootstrap()
        self.conduit.push("E22")
        self.pump()
        callback.assert_called_once_with("busy")

    def test_tie_for_unknown_output_is_dropped(self):
        self.bootstrap()
        with self.assertLogs('extron.matrix.mapping', level='WARNING'):
            self.conduit.push("Out9 In1 All")
            self.pump()
        assert_that(self.sut.mappings, has_length(4))

    def test_unprompted_tie_leaves_queries_paired_with_their_answers(self):
        self.bootstrap()
        self.device.ties[1] = [2, 6]
        self.conduit.push("Out3 In2 All")
        video = self.sut.query_output(1, MappingType.Video)
        audio = self.sut.query_output(1, MappingType.Audio)
        self.pump()
        assert_that(video.result(0), is_("02"))
        assert_that(audio.result(0), is_("06"))
        assert_that(self.sut.mapping(1), is_(OutputMapping(1, video_input=2, audio_input=6)))
        assert_that(self.sut.mapping(3), is_(OutputMapping(3, video_input=2, audio_input=2)))

    def test_unprompted_tie_does_not_take_confirmation_of_another_output(self):
        self.bootstrap()
        self.conduit.push("Out4 In1 Vid")
        ticket = self.sut.map_input_to_output(3, 2, MappingType.Video)
        self.pump()
        assert_that(ticket.result(0), is_("Out2 In3 Vid"))
        assert_that(self.sut.mapping(4), is_(OutputMapping(4, video_input=1, audio_input=0)))
        assert_that(self.sut.mapping(2), is_(OutputMapping(2, video_input=3, audio_input=0)))

    def test_wait_until_ready_async(self):
        self.bootstrap()
        assert_that(asyncio.run(self.sut.wait_until_ready_async()), is_(True))


class MatrixSwitcherThreadedTest(unittest.TestCase):
    """ runs the communicator with the background loops against the fake device """

    def setUp(self):
        self.device = FakeCrosspoint(ties={2: [7, 8]})
        self.conduit = FakeConduit(responder=self.device, read_timeout=0.01)
        self.sut = MatrixSwitcherCommunicator(self.conduit, settle_delay=0.02, backoff=0.01)

    def tearDown(self):
        self.sut.close_connection()

    @timeout_decorator.timeout(debug_timeout(5))
    def test_ready_after_bootstrap(self):
        self.sut.open_connection()
        assert_that(self.sut.is_ready, is_(False))
        assert_that(self.sut.wait_until_ready(3), is_(True))
        assert_that(self.sut.inputs, is_(8))
        assert_that(self.sut.outputs, is_(4))
        assert_that(self.sut.mappings, has_length(4))
        assert_that(self.sut.mapping(2), is_(OutputMapping(2, 7, 8)))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_tie_after_ready(self):
        self.sut.open_connection()
        self.sut.wait_until_ready(3)
        ticket = self.sut.map_input_to_output(3, 2, MappingType.Video)
        assert_that(ticket.result(2), is_("Out2 In3 Vid"))
        assert_that(wait_for(lambda: self.sut.mapping(2) == OutputMapping(2, 3, 8)), is_(True))

    @timeout_decorator.timeout(debug_timeout(5))
    def test_close_during_bootstrap(self):
        self.sut.settle_delay = 1
        self.sut.open_connection()
        assert_that(wait_for(lambda: len(self.conduit.written) == 2), is_(True))
        thread = self.sut._bootstrap_thread
        self.sut.close_connection()
        assert_that(thread.is_alive(), is_(False))
        assert_that(self.sut.is_ready, is_(False))
        assert_that(self.conduit.written, is_(["I", "1%"]))


if __name__ == '__main__':  # pragma no cover
    unittest.main()
