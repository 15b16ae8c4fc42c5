########################################################################
# File name: __init__.py
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
Using SASL in a protocol client
===============================

To make use of SASL in an existing protocol client, you need a
:class:`SASLTransport`. For clients which already know how to send a
command and answer its continuation requests, :class:`ClientTransport` (or
:class:`IMAPTransport` for IMAP) only needs a callable which does so.

The mechanisms advertised by the server are detected by the protocol
client; :meth:`SASLMechanism.any_supported` tells whether a mechanism class
can be used::

    # transport = <instance of a SASLTransport>
    name = imapsasl.DIGEST_MD5.any_supported(server_mechanisms)
    if name is not None:
        mechanism = imapsasl.DIGEST_MD5("chris", "secret")
        try:
            imapsasl.authenticate(transport, name, mechanism)
        except imapsasl.AuthenticationFailure:
            # the server rejected the credentials, the connection is
            # still usable
        except imapsasl.SASLError:
            # any other problem; unless the transport declared the error
            # recoverable, the connection has been dropped
        else:
            # authentication was successful!

Mechanism instances hold the state of one authentication attempt; create a
new one for every attempt.

The mechanisms which are currently supported by :mod:`imapsasl` are
summarised below:

.. autosummary::

   DIGEST_MD5

Interface for protocols using SASL
==================================

.. autoclass:: SASLTransport

.. autoclass:: ClientTransport

.. autoclass:: IMAPTransport

SASL mechanisms
===============

.. autoclass:: DIGEST_MD5(username, password, authzid=None, *[, realm][, service="imap"][, host][, service_name][, warn_deprecation=True])

Base class
----------

.. autoclass:: SASLMechanism

SASL exchange
=============

.. autoclass:: SASLExchange

.. autofunction:: authenticate

.. autoclass:: SASLState

.. autoclass:: ErrorClass

Exception classes
=================

.. autoclass:: SASLError

.. autoclass:: SASLFailure

.. autoclass:: AuthenticationFailure

.. autoclass:: AuthenticationIncomplete

.. autoclass:: DataFormatError

.. autoclass:: ResponseParseError

.. autoclass:: MissingCredentialError

Version information
===================

.. autodata:: __version__

.. autodata:: version_info
"""  # NOQA

from .common import (  # noqa:F401
    AuthenticationFailure,
    AuthenticationIncomplete,
    DataFormatError,
    ErrorClass,
    MissingCredentialError,
    ResponseParseError,
    SASLError,
    SASLFailure,
    SASLState,
    Stage,
)

from .statemachine import (  # noqa:F401
    SASLExchange,
    SASLMechanism,
    SASLTransport,
    authenticate,
    decode,
    encode,
    encode_initial_response,
)

from .digest_md5 import (  # noqa:F401
    DIGEST_MD5,
)

from .transport import (  # noqa:F401
    ClientTransport,
)

from .imap import (  # noqa:F401
    BadResponseError,
    ByeResponseError,
    IMAPTransport,
    NoResponseError,
    ResponseError,
)

from .version import version, __version__, version_info  # noqa:F401

#: The imported :mod:`imapsasl` version as a tuple.
#:
#: The components of the tuple are, in order: `major version`, `minor version`,
#: `patch level`, and `pre-release identifier`.
version_info = version_info

#: The imported :mod:`imapsasl` version as a string.
#:
#: The version number is dot-separated; in pre-release or development versions,
#: the version number is followed by a hypen-separated pre-release identifier.
__version__ = __version__
