########################################################################
# File name: transport.py
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
"""
Client transports
=================

:class:`ClientTransport` adapts an existing protocol client object to the
:class:`~.SASLTransport` interface, so that the client does not need to
implement the interface itself.

.. autoclass:: ClientTransport
"""
import typing

from . import common, statemachine


CommandCallable = typing.Callable[
    [str, str, typing.Optional[bytes], common.ContinuationHandler],
    typing.Any
]


class ClientTransport(statemachine.SASLTransport):
    """
    Transport which delegates to a protocol `client`.

    :param client: The protocol client. It must provide ``capable(name)``,
        ``auth_capable(mechanism)`` and ``disconnect()``.
    :param command: Callable which sends the authentication command; it is
        called with the same arguments as :meth:`send_command`.

    If `command` is not given, subclasses must override
    :meth:`send_command`.
    """

    def __init__(
            self,
            client: typing.Any,
            command: typing.Optional[CommandCallable] = None):
        super().__init__()
        self.client = client
        self.command = command

    def send_command(
            self,
            command: str,
            mechanism: str,
            initial_response: typing.Optional[bytes],
            continuation: common.ContinuationHandler,
            ) -> typing.Any:
        if self.command is None:
            raise common.SASLError(
                None,
                "no command",
                text="initialize with a command callable or override "
                "send_command",
            )
        return self.command(command, mechanism, initial_response,
                            continuation)

    def supports_initial_response(self) -> bool:
        return bool(self.client.capable("SASL-IR"))

    def supports_mechanism(self, mechanism: str) -> bool:
        return bool(self.client.auth_capable(mechanism))

    def drop_connection(self) -> None:
        self.client.disconnect()

    def drop_connection_abruptly(self) -> None:
        self.client.disconnect()
