########################################################################
# File name: test_imapsasl.py
# This file is part of: imapsasl
#
# LICENSE
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Lesser General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful, but
# WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this program.  If not, see
# <http://www.gnu.org/licenses/>.
#
########################################################################
import base64
import unittest
import unittest.mock

import imapsasl


class RecoverableError(Exception):
    pass


class SASLTransportMock(imapsasl.SASLTransport):
    response_errors = (RecoverableError,)

    def __init__(self, testobj, initiation, exchange,
                 result="OK", sasl_ir=True, mechanisms=("DIGEST-MD5",),
                 transform=None):
        super().__init__()
        self._testobj = testobj
        self._initiation = initiation
        self._exchange = list(exchange)
        self._result = result
        self._sasl_ir = sasl_ir
        self._mechanisms = mechanisms
        self._transform = transform
        self.actions = []

    def send_command(self, command, mechanism, initial_response,
                     continuation):
        self._testobj.assertEqual(
            (command, mechanism, initial_response),
            self._initiation,
            "SASL initiation expectation violated")

        while self._exchange:
            challenge, expected = self._exchange.pop(0)
            response = continuation(base64.b64encode(challenge))
            self._testobj.assertEqual(
                base64.b64decode(response),
                expected,
                "SASL payload expectation violated")

        if isinstance(self._result, BaseException):
            raise self._result
        return self._result

    def supports_initial_response(self):
        return self._sasl_ir

    def supports_mechanism(self, mechanism):
        return mechanism in self._mechanisms

    def drop_connection(self):
        self.actions.append("drop")

    def drop_connection_abruptly(self):
        self.actions.append("drop!")

    def transform_exception(self, exc):
        if self._transform is not None:
            return self._transform(exc)
        return exc

    def finalize(self):
        self._testobj.assertFalse(
            self._exchange,
            "Not all actions performed")


def make_mechanism(may_initiate=True, responses=(), done=True):
    mechanism = unittest.mock.Mock(spec=imapsasl.SASLMechanism)
    mechanism.may_initiate.return_value = may_initiate
    mechanism.process.side_effect = list(responses)
    mechanism.is_done.return_value = done
    return mechanism


class TestCodec(unittest.TestCase):
    def test_encode_decode_round_trip(self):
        for data in [b"", b"\0", b"foo", bytes(range(256))]:
            self.assertEqual(
                imapsasl.decode(imapsasl.encode(data)),
                data
            )

    def test_encode_empty(self):
        self.assertEqual(imapsasl.encode(b""), b"")

    def test_encode_has_no_newlines(self):
        self.assertNotIn(b"\n", imapsasl.encode(b"x" * 200))

    def test_encode_initial_response_uses_marker_for_empty(self):
        self.assertEqual(imapsasl.encode_initial_response(b""), b"=")

    def test_encode_initial_response(self):
        self.assertEqual(
            imapsasl.encode_initial_response(b"foo"),
            b"Zm9v"
        )

    def test_decode_accepts_str(self):
        self.assertEqual(imapsasl.decode("Zm9v"), b"foo")

    def test_decode_marker(self):
        self.assertEqual(imapsasl.decode(b"="), b"")
        self.assertEqual(imapsasl.decode(""), b"")

    def test_decode_rejects_garbage(self):
        with self.assertRaises(imapsasl.ResponseParseError):
            imapsasl.decode(b"Zm9v!")

    def test_decode_rejects_non_ascii_str(self):
        with self.assertRaises(imapsasl.ResponseParseError):
            imapsasl.decode("Zm9vä")


class TestSASLMechanism(unittest.TestCase):
    def test_may_initiate_defaults_to_false(self):
        class Mechanism(imapsasl.SASLMechanism):
            def process(self, challenge):
                return b""

            def is_done(self):
                return True

        self.assertFalse(Mechanism().may_initiate())

    def test_is_abstract(self):
        with self.assertRaises(TypeError):
            imapsasl.SASLMechanism()

    def test_any_supported(self):
        self.assertEqual(
            "DIGEST-MD5",
            imapsasl.DIGEST_MD5.any_supported(["PLAIN", "DIGEST-MD5"])
        )

    def test_any_supported_returns_None(self):
        self.assertIsNone(
            imapsasl.DIGEST_MD5.any_supported(["PLAIN", "SCRAM-SHA-1"])
        )


class TestSASLExchange(unittest.TestCase):
    def test_sends_initial_response(self):
        mechanism = make_mechanism(responses=[b"hello"])
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", b"aGVsbG8="),
            [])

        self.assertEqual(
            "OK",
            imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)
        )

        mechanism.process.assert_called_once_with(None)
        transport.finalize()
        self.assertEqual(transport.actions, [])

    def test_empty_initial_response_is_sent_as_marker(self):
        mechanism = make_mechanism(responses=[b""])
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", b"="),
            [])

        imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)
        transport.finalize()

    def test_uses_command_name_of_transport(self):
        mechanism = make_mechanism(may_initiate=False)
        transport = SASLTransportMock(
            self,
            ("AUTH", "DIGEST-MD5", None),
            [])
        transport.command_name = "AUTH"

        imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)
        transport.finalize()

    def test_no_initial_response_if_disallowed(self):
        mechanism = make_mechanism(responses=[b"bar"])
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [(b"foo", b"bar")])

        imapsasl.authenticate(transport, "DIGEST-MD5", mechanism,
                              allow_initial_response=False)

        mechanism.process.assert_called_once_with(b"foo")
        transport.finalize()

    def test_no_initial_response_without_sasl_ir(self):
        mechanism = make_mechanism(responses=[b"bar"])
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [(b"foo", b"bar")],
            sasl_ir=False)

        imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        mechanism.process.assert_called_once_with(b"foo")
        transport.finalize()

    def test_no_initial_response_for_unsupported_mechanism(self):
        mechanism = make_mechanism(responses=[b"bar"])
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "X-FOO", None),
            [(b"foo", b"bar")])

        imapsasl.authenticate(transport, "X-FOO", mechanism)

        mechanism.process.assert_called_once_with(b"foo")
        transport.finalize()

    def test_no_initial_response_if_mechanism_cannot_initiate(self):
        mechanism = make_mechanism(may_initiate=False, responses=[b"bar"])
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [(b"foo", b"bar")])

        imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        mechanism.process.assert_called_once_with(b"foo")
        transport.finalize()

    def test_continuations_are_passed_to_mechanism(self):
        mechanism = make_mechanism(
            may_initiate=False,
            responses=[b"first", b""])
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [
                (b"challenge-1", b"first"),
                (b"challenge-2", b""),
            ])

        imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        self.assertSequenceEqual(
            mechanism.process.mock_calls,
            [
                unittest.mock.call(b"challenge-1"),
                unittest.mock.call(b"challenge-2"),
            ]
        )
        transport.finalize()

    def test_incomplete_authentication(self):
        mechanism = make_mechanism(may_initiate=False, done=False)
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [],
            result=unittest.mock.sentinel.result)

        with self.assertRaises(imapsasl.AuthenticationIncomplete) as ctx:
            imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        self.assertIs(ctx.exception.result, unittest.mock.sentinel.result)
        self.assertIsNone(ctx.exception.opaque_error)
        self.assertEqual(transport.actions, ["drop"])

    def test_recoverable_error_keeps_connection(self):
        exc = RecoverableError()
        mechanism = make_mechanism(may_initiate=False)
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [],
            result=exc)

        with self.assertRaises(RecoverableError) as ctx:
            imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        self.assertIs(ctx.exception, exc)
        self.assertEqual(transport.actions, [])

    def test_recoverable_error_is_transformed(self):
        exc = RecoverableError()
        transformed = imapsasl.AuthenticationFailure("NO")
        mechanism = make_mechanism(may_initiate=False)
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [],
            result=exc,
            transform=lambda e: transformed)

        with self.assertRaises(imapsasl.AuthenticationFailure) as ctx:
            imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        self.assertIs(ctx.exception, transformed)
        self.assertIs(ctx.exception.__cause__, exc)
        self.assertEqual(transport.actions, [])

    def test_other_error_drops_connection(self):
        exc = ValueError()
        mechanism = make_mechanism(may_initiate=False)
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [],
            result=exc)

        with self.assertRaises(ValueError) as ctx:
            imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        self.assertIs(ctx.exception, exc)
        self.assertEqual(transport.actions, ["drop"])

    def test_other_error_is_transformed_after_drop(self):
        transformed = RuntimeError()
        mechanism = make_mechanism(may_initiate=False)
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [],
            result=ValueError(),
            transform=lambda e: transformed)

        with self.assertRaises(RuntimeError) as ctx:
            imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        self.assertIs(ctx.exception, transformed)
        self.assertEqual(transport.actions, ["drop"])

    def test_mechanism_error_drops_connection(self):
        exc = imapsasl.DataFormatError(None, text="bad challenge")
        mechanism = make_mechanism(may_initiate=False, responses=[exc])
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [(b"foo", None)])

        with self.assertRaises(imapsasl.DataFormatError) as ctx:
            imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        self.assertIs(ctx.exception, exc)
        self.assertEqual(transport.actions, ["drop"])

    def test_fatal_error_drops_connection_abruptly(self):
        mechanism = make_mechanism(may_initiate=False)
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [],
            result=KeyboardInterrupt(),
            transform=lambda e: self.fail("transform called"))

        with self.assertRaises(KeyboardInterrupt):
            imapsasl.authenticate(transport, "DIGEST-MD5", mechanism)

        self.assertEqual(transport.actions, ["drop!"])

    def test_classify(self):
        transport = SASLTransportMock(self, None, [])
        exchange = imapsasl.SASLExchange(
            transport,
            "DIGEST-MD5",
            make_mechanism())

        self.assertEqual(
            exchange.classify(RecoverableError()),
            imapsasl.ErrorClass.RECOVERABLE
        )
        self.assertEqual(
            exchange.classify(imapsasl.SASLFailure(None)),
            imapsasl.ErrorClass.DISCONNECT
        )
        self.assertEqual(
            exchange.classify(SystemExit()),
            imapsasl.ErrorClass.FATAL
        )

    def test_state_transitions_on_success(self):
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [])
        exchange = imapsasl.SASLExchange(
            transport,
            "DIGEST-MD5",
            make_mechanism(may_initiate=False))

        self.assertEqual(exchange.state, imapsasl.SASLState.INITIAL)
        exchange.authenticate()
        self.assertEqual(exchange.state, imapsasl.SASLState.SUCCESS)

    def test_state_transitions_on_failure(self):
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [],
            result=RecoverableError())
        exchange = imapsasl.SASLExchange(
            transport,
            "DIGEST-MD5",
            make_mechanism(may_initiate=False))

        with self.assertRaises(RecoverableError):
            exchange.authenticate()
        self.assertEqual(exchange.state, imapsasl.SASLState.FAILURE)

    def test_reject_double_authenticate(self):
        transport = SASLTransportMock(
            self,
            ("AUTHENTICATE", "DIGEST-MD5", None),
            [])
        exchange = imapsasl.SASLExchange(
            transport,
            "DIGEST-MD5",
            make_mechanism(may_initiate=False))
        exchange.authenticate()

        with self.assertRaisesRegex(RuntimeError,
                                    "has already been called"):
            exchange.authenticate()

    def test_cancel_response(self):
        self.assertEqual(imapsasl.SASLExchange.cancel_response, b"*")


class TestClientTransport(unittest.TestCase):
    def setUp(self):
        self.client = unittest.mock.Mock()
        self.command = unittest.mock.Mock()
        self.transport = imapsasl.ClientTransport(self.client, self.command)

    def test_forwards_to_command(self):
        continuation = unittest.mock.Mock()
        self.command.return_value = unittest.mock.sentinel.result

        self.assertIs(
            self.transport.send_command("AUTHENTICATE", "DIGEST-MD5", None,
                                        continuation),
            unittest.mock.sentinel.result
        )

        self.command.assert_called_once_with(
            "AUTHENTICATE", "DIGEST-MD5", None, continuation)

    def test_send_command_without_command(self):
        transport = imapsasl.ClientTransport(self.client)

        with self.assertRaisesRegex(imapsasl.SASLError, "command"):
            transport.send_command("AUTHENTICATE", "DIGEST-MD5", None,
                                   unittest.mock.Mock())

    def test_supports_initial_response(self):
        self.client.capable.return_value = True

        self.assertTrue(self.transport.supports_initial_response())
        self.client.capable.assert_called_once_with("SASL-IR")

    def test_supports_mechanism(self):
        self.client.auth_capable.return_value = False

        self.assertFalse(self.transport.supports_mechanism("DIGEST-MD5"))
        self.client.auth_capable.assert_called_once_with("DIGEST-MD5")

    def test_drop_connection(self):
        self.transport.drop_connection()
        self.client.disconnect.assert_called_once_with()

    def test_drop_connection_abruptly(self):
        self.transport.drop_connection_abruptly()
        self.client.disconnect.assert_called_once_with()

    def test_response_errors_empty(self):
        self.assertEqual(self.transport.response_errors, ())

    def test_transform_exception_is_identity(self):
        exc = ValueError()
        self.assertIs(self.transport.transform_exception(exc), exc)


class TestIMAPTransport(unittest.TestCase):
    def setUp(self):
        self.client = unittest.mock.Mock()
        self.client.capable.return_value = True
        self.client.auth_capable.return_value = True
        self.command = unittest.mock.Mock()
        self.transport = imapsasl.IMAPTransport(self.client, self.command)

    def test_response_errors(self):
        self.assertSequenceEqual(
            self.transport.response_errors,
            (
                imapsasl.NoResponseError,
                imapsasl.BadResponseError,
                imapsasl.ByeResponseError,
            )
        )

    def test_drop_connection_logs_out(self):
        self.transport.drop_connection()
        self.client.logout.assert_called_once_with()
        self.client.disconnect.assert_not_called()

    def test_NO_becomes_authentication_failure(self):
        self.command.side_effect = imapsasl.NoResponseError(
            unittest.mock.sentinel.response,
            text="invalid credentials")

        with self.assertRaises(imapsasl.AuthenticationFailure) as ctx:
            imapsasl.authenticate(
                self.transport,
                "DIGEST-MD5",
                make_mechanism(may_initiate=False))

        self.assertIs(ctx.exception.opaque_error,
                      unittest.mock.sentinel.response)
        self.assertEqual(ctx.exception.text, "invalid credentials")
        self.assertIsInstance(ctx.exception.__cause__,
                              imapsasl.NoResponseError)
        self.client.logout.assert_not_called()
        self.client.disconnect.assert_not_called()

    def test_BAD_is_passed_through(self):
        exc = imapsasl.BadResponseError(unittest.mock.sentinel.response)
        self.command.side_effect = exc

        with self.assertRaises(imapsasl.BadResponseError) as ctx:
            imapsasl.authenticate(
                self.transport,
                "DIGEST-MD5",
                make_mechanism(may_initiate=False))

        self.assertIs(ctx.exception, exc)
        self.assertIn("BAD response", str(exc))
        self.client.logout.assert_not_called()

    def test_other_errors_log_out(self):
        self.command.side_effect = OSError()

        with self.assertRaises(OSError):
            imapsasl.authenticate(
                self.transport,
                "DIGEST-MD5",
                make_mechanism(may_initiate=False))

        self.client.logout.assert_called_once_with()
        self.client.disconnect.assert_not_called()

    def test_fatal_errors_disconnect(self):
        self.command.side_effect = KeyboardInterrupt()

        with self.assertRaises(KeyboardInterrupt):
            imapsasl.authenticate(
                self.transport,
                "DIGEST-MD5",
                make_mechanism(may_initiate=False))

        self.client.disconnect.assert_called_once_with()
        self.client.logout.assert_not_called()

    def test_initial_response_uses_capabilities(self):
        self.command.return_value = "OK"

        imapsasl.authenticate(
            self.transport,
            "X-FOO",
            make_mechanism(responses=[b"foo"]))

        self.client.capable.assert_called_once_with("SASL-IR")
        self.client.auth_capable.assert_called_once_with("X-FOO")
        self.command.assert_called_once_with(
            "AUTHENTICATE", "X-FOO", b"Zm9v", unittest.mock.ANY)
