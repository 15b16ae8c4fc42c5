########################################################################
# File name: statemachine.py
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
import abc
import base64
import logging
import typing

from . import common


logger = logging.getLogger(__name__)


def encode(data: bytes) -> bytes:
    """
    Encode a client response for use as continuation payload.
    """
    return base64.b64encode(data)


def encode_initial_response(data: bytes) -> bytes:
    """
    Encode an initial client response. An empty response is sent as a single
    ``=``, since an empty argument cannot be told apart from a missing one.
    """
    if not data:
        return b"="
    return encode(data)


def decode(data: typing.Union[bytes, str]) -> bytes:
    """
    Decode a continuation payload sent by the server.

    Raise :class:`~.ResponseParseError` if `data` is not valid base64.
    """
    if data in (b"", "", b"=", "="):
        return b""
    try:
        if isinstance(data, str):
            data = data.encode("ascii")
        return base64.b64decode(data, validate=True)
    except ValueError:
        raise common.ResponseParseError(
            None,
            text="malformed continuation payload: {!r}".format(data),
        ) from None


class SASLTransport(metaclass=abc.ABCMeta):
    """
    This class serves as an abstract base class for transports used by
    :class:`SASLExchange`. Specific protocols using SASL (such as IMAP, SMTP
    or POP3) can subclass this interface to implement SASL on top of the
    existing protocol.

    The transport does not need to implement any state checking or payload
    encoding; both are done by the :class:`SASLExchange`.

    .. attribute:: command_name

       The command which starts the authentication exchange. Defaults to
       ``"AUTHENTICATE"``.

    .. attribute:: response_errors

       A tuple of exception classes :meth:`send_command` raises for error
       replies by the server. Such errors leave the connection usable, so
       the exchange does not drop the connection for them.

    .. automethod:: send_command

    .. automethod:: supports_initial_response

    .. automethod:: supports_mechanism

    .. automethod:: drop_connection

    .. automethod:: drop_connection_abruptly

    .. automethod:: transform_exception
    """

    command_name = "AUTHENTICATE"

    response_errors = ()  # type: typing.Tuple[typing.Type[BaseException], ...]

    @abc.abstractmethod
    def send_command(
            self,
            command: str,
            mechanism: str,
            initial_response: typing.Optional[bytes],
            continuation: common.ContinuationHandler,
            ) -> typing.Any:
        """
        Send `command` for `mechanism`, with the already encoded
        `initial_response` if it is not :data:`None`.

        Every continuation request of the server must be passed to
        `continuation`; its return value is the payload to send back. Return
        the result of the command once it completed successfully.
        Unsuccessful results **must** raise an exception, and exceptions
        raised by `continuation` **must** cause the command to fail.
        """

    @abc.abstractmethod
    def supports_initial_response(self) -> bool:
        """
        Return true if the server accepts an initial response along with the
        command.
        """

    @abc.abstractmethod
    def supports_mechanism(self, mechanism: str) -> bool:
        """
        Return true if the server advertised `mechanism`.
        """

    @abc.abstractmethod
    def drop_connection(self) -> None:
        """
        Log out and disconnect gracefully.
        """

    def drop_connection_abruptly(self) -> None:
        """
        Drop the connection without any further exchange with the server.

        The default implementation calls :meth:`drop_connection`.
        """
        self.drop_connection()

    def transform_exception(
            self,
            exc: BaseException,
            ) -> BaseException:
        """
        Return the exception which is to be raised in place of `exc`. The
        default returns `exc` itself.
        """
        return exc


class SASLMechanism(metaclass=abc.ABCMeta):
    """
    Implementation of a client-side SASL mechanism. A mechanism instance
    carries the state of exactly one authentication attempt and must not be
    re-used.

    .. automethod:: any_supported

    .. automethod:: may_initiate

    .. automethod:: process

    .. automethod:: is_done

    .. note:: Administrative note

       Patches for new SASL mechanisms are welcome!

    """

    #: The registered SASL name of the mechanism.
    mechanism_name = None  # type: typing.Optional[str]

    @classmethod
    def any_supported(
            cls,
            mechanisms: typing.Iterable[str],
            ) -> typing.Optional[str]:
        """
        Return :attr:`mechanism_name` if it is among the strings in
        `mechanisms`, :data:`None` otherwise.
        """
        if cls.mechanism_name in mechanisms:
            return cls.mechanism_name
        return None

    def may_initiate(self) -> bool:
        """
        Return true if the mechanism can produce a response before the server
        sent any challenge. The default is :data:`False`.
        """
        return False

    @abc.abstractmethod
    def process(
            self,
            challenge: typing.Optional[bytes],
            ) -> bytes:
        """
        Consume the decoded server `challenge` and return the next client
        response. `challenge` is :data:`None` only when the initial response
        is requested.
        """

    @abc.abstractmethod
    def is_done(self) -> bool:
        """
        Return true once the client side of the exchange is complete.

        .. warning::

           This does **not** mean that the server accepted the credentials.
           Only the successful completion of the authentication command does.
        """


class SASLExchange:
    """
    Drive one :class:`SASLMechanism` through one authentication command on a
    :class:`SASLTransport`.

    An exchange can only be run once; calling :meth:`authenticate` again
    raises :class:`RuntimeError`.

    If `allow_initial_response` is false, no initial response is sent, even
    when both the mechanism and the server support it.

    Errors raised during the exchange are classified (see
    :class:`~.ErrorClass`): errors listed in
    :attr:`SASLTransport.response_errors` are re-raised (after
    :meth:`SASLTransport.transform_exception`) with the connection intact,
    other exceptions drop the connection gracefully and anything else drops
    it abruptly.
    """

    #: The payload a mechanism may answer a challenge with to abort.
    cancel_response = b"*"

    def __init__(
            self,
            transport: SASLTransport,
            mechanism_name: str,
            mechanism: SASLMechanism,
            *,
            allow_initial_response: bool = True):
        super().__init__()
        self.transport = transport
        self.mechanism_name = mechanism_name
        self.mechanism = mechanism
        self.allow_initial_response = allow_initial_response
        self._state = common.SASLState.INITIAL

    @property
    def state(self) -> common.SASLState:
        return self._state

    def send_initial_response(self) -> bool:
        return (self.allow_initial_response and
                self.mechanism.may_initiate() and
                self.transport.supports_initial_response() and
                self.transport.supports_mechanism(self.mechanism_name))

    def classify(self, exc: BaseException) -> common.ErrorClass:
        if isinstance(exc, self.transport.response_errors):
            return common.ErrorClass.RECOVERABLE
        if isinstance(exc, Exception):
            return common.ErrorClass.DISCONNECT
        return common.ErrorClass.FATAL

    def _process(self, challenge: bytes) -> bytes:
        logger.debug("%s continuation received", self.mechanism_name)
        return encode(self.mechanism.process(decode(challenge)))

    def authenticate(self) -> typing.Any:
        """
        Run the exchange and return the result of the transport's
        :meth:`~SASLTransport.send_command`.

        Raise :class:`~.AuthenticationIncomplete` if the server finished the
        command while the mechanism still expected challenges.
        """
        if self._state != common.SASLState.INITIAL:
            raise RuntimeError("authenticate has already been called")

        self._state = common.SASLState.CHALLENGE
        logger.info("attempting %s mechanism", self.mechanism_name)

        try:
            initial_response = None
            if self.send_initial_response():
                logger.debug("sending initial response")
                initial_response = encode_initial_response(
                    self.mechanism.process(None)
                )

            result = self.transport.send_command(
                self.transport.command_name,
                self.mechanism_name,
                initial_response,
                self._process,
            )

            if not self.mechanism.is_done():
                raise common.AuthenticationIncomplete(result)
        except BaseException as exc:
            self._state = common.SASLState.FAILURE
            error_class = self.classify(exc)

            if error_class == common.ErrorClass.FATAL:
                logger.warning("dropping connection abruptly after %s",
                               type(exc).__name__)
                self.transport.drop_connection_abruptly()
                raise

            if error_class == common.ErrorClass.DISCONNECT:
                logger.warning("dropping connection after %s failure: %s",
                               self.mechanism_name, exc)
                self.transport.drop_connection()

            transformed = self.transport.transform_exception(exc)
            if transformed is exc:
                raise
            raise transformed from exc

        self._state = common.SASLState.SUCCESS
        return result


def authenticate(
        transport: SASLTransport,
        mechanism_name: str,
        mechanism: SASLMechanism,
        allow_initial_response: bool = True,
        ) -> typing.Any:
    """
    Convenience function for
    ``SASLExchange(...).authenticate()``.
    """
    exchange = SASLExchange(
        transport,
        mechanism_name,
        mechanism,
        allow_initial_response=allow_initial_response,
    )
    return exchange.authenticate()
