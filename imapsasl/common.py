########################################################################
# File name: common.py
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
import enum
import typing


class SASLError(Exception):
    """
    Base class for a SASL related error. `opaque_error` may be anything which
    helps your application re-identify the error at the outer layers (for
    example the server response which caused it). `kind` is a string which
    helps identifying the class of the error; this is set implicitly by the
    constructors of the subclasses, which you are encouraged to use.

    `text` may be a human-readable string describing the error condition in
    more detail.

    `opaque_error` is set to :data:`None` by :class:`SASLMechanism`
    implementations to indicate errors which originate from the local mechanism
    implementation.

    .. attribute:: opaque_error

       The value passed to the respective constructor argument.

    .. attribute:: text

       The value passed to the respective constructor argument.

    """

    def __init__(
            self,
            opaque_error: typing.Any,
            kind: str,
            text: typing.Optional[str] = None):
        msg = "{}: {}".format(opaque_error, kind)
        if text:
            msg += ": {}".format(text)
        super().__init__(msg)
        self.opaque_error = opaque_error
        self.kind = kind
        self.text = text


class AuthenticationFailure(SASLError):
    """
    A SASL error which indicates that the provided credentials are
    invalid. This is what :meth:`.IMAPTransport.transform_exception` turns a
    tagged ``NO`` reply into.
    """

    def __init__(
            self,
            opaque_error: typing.Any,
            text: typing.Optional[str] = None):
        super().__init__(opaque_error, "authentication failed", text=text)


class SASLFailure(SASLError):
    """
    A SASL protocol failure which is unrelated to the credentials passed.
    """

    KIND = "SASL failure"

    def __init__(
            self,
            opaque_error: typing.Any,
            text: typing.Optional[str] = None):
        super().__init__(opaque_error, self.KIND, text=text)

    def promote_to_authentication_failure(self) -> AuthenticationFailure:
        return AuthenticationFailure(
            self.opaque_error,
            self.text)


class DataFormatError(SASLFailure):
    """
    The server challenge is grammatically fine, but semantically invalid:
    a required directive is missing or duplicated, or the offered quality of
    protection cannot be used.
    """

    KIND = "data format error"


class ResponseParseError(SASLFailure):
    """
    The server challenge could not be parsed, or a challenge arrived when the
    mechanism did not expect any more.
    """

    KIND = "response parse error"


class AuthenticationIncomplete(SASLFailure):
    """
    The server reported success for the authentication command, but the
    mechanism had not finished its side of the exchange.

    .. attribute:: result

       Whatever the transport returned for the completed command.
    """

    KIND = "authentication incomplete"

    def __init__(self, result: typing.Any):
        super().__init__(
            None,
            text="server completed the command before the mechanism "
            "finished the exchange")
        self.result = result


class MissingCredentialError(ValueError):
    """
    A required identity or secret was not passed to a mechanism constructor.
    """


class SASLState(enum.Enum):
    """
    The states of a :class:`~.SASLExchange`.

    .. attribute:: INITIAL

       the state of the exchange before :meth:`authenticate` is called

    .. attribute:: CHALLENGE

       the authentication command is in flight and the server may send
       continuation challenges

    .. attribute:: SUCCESS

       the transport reported success and the mechanism is done

    .. attribute:: FAILURE

       the authentication failed
    """

    INITIAL = "initial"
    CHALLENGE = "challenge"
    SUCCESS = "success"
    FAILURE = "failure"


class Stage(enum.Enum):
    """
    The stages of a multi-step mechanism such as
    :class:`~imapsasl.digest_md5.DIGEST_MD5`. Transitions only go forward;
    :attr:`COMPLETE` is terminal.
    """

    AWAITING_FIRST_CHALLENGE = "awaiting-first-challenge"
    AWAITING_CONFIRMATION = "awaiting-confirmation"
    COMPLETE = "complete"


class ErrorClass(enum.Enum):
    """
    How :class:`~.SASLExchange` treats an error raised during the exchange.

    .. attribute:: RECOVERABLE

       One of the :attr:`~.SASLTransport.response_errors`. The error is
       passed through :meth:`~.SASLTransport.transform_exception` and the
       connection stays usable.

    .. attribute:: DISCONNECT

       Any other :class:`Exception`. The connection is dropped gracefully
       before the (transformed) error is re-raised.

    .. attribute:: FATAL

       Anything which is not an :class:`Exception`, such as
       :class:`KeyboardInterrupt`. The connection is dropped abruptly and the
       error propagates unchanged.
    """

    RECOVERABLE = "recoverable"
    DISCONNECT = "disconnect"
    FATAL = "fatal"


ChallengeParameters = typing.Dict[str, typing.List[str]]

ContinuationHandler = typing.Callable[[bytes], bytes]
