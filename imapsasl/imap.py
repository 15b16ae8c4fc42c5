########################################################################
# File name: imap.py
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
IMAP transport
==============

.. autoclass:: IMAPTransport

.. autoclass:: ResponseError

.. autoclass:: NoResponseError

.. autoclass:: BadResponseError

.. autoclass:: ByeResponseError
"""
import typing

from . import common, transport


class ResponseError(common.SASLFailure):
    """
    Raised by the IMAP command callable for a tagged or untagged error
    response. `response` is the response as seen by the client, `text` the
    human-readable part of it.
    """

    KIND = "error response"

    def __init__(
            self,
            response: typing.Any,
            text: typing.Optional[str] = None):
        super().__init__(response, text=text)
        self.response = response


class NoResponseError(ResponseError):
    KIND = "NO response"


class BadResponseError(ResponseError):
    KIND = "BAD response"


class ByeResponseError(ResponseError):
    KIND = "BYE response"


class IMAPTransport(transport.ClientTransport):
    """
    :class:`~.ClientTransport` for IMAP clients (see :rfc:`3501` and
    :rfc:`4959`).

    Server error responses are raised as subclasses of
    :class:`ResponseError`; they leave the connection usable, so the caller
    may try again with other credentials. A ``NO`` response to the
    ``AUTHENTICATE`` command is turned into an
    :class:`~.AuthenticationFailure`.

    On any other error, the client is logged out with ``client.logout()``.
    """

    response_errors = (NoResponseError, BadResponseError, ByeResponseError)

    def drop_connection(self) -> None:
        self.client.logout()

    def transform_exception(
            self,
            exc: BaseException,
            ) -> BaseException:
        if isinstance(exc, NoResponseError):
            return exc.promote_to_authentication_failure()
        return exc
