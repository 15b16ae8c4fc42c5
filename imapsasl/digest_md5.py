########################################################################
# File name: digest_md5.py
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
import collections
import hashlib
import logging
import random
import re
import typing
import warnings

from . import common, statemachine


logger = logging.getLogger(__name__)


_system_random = random.SystemRandom()


# directives which may appear at most once (RFC 2831, section 2.1.1)
NO_MULTIPLES = ("nonce", "stale", "maxbuf", "charset", "algorithm")

# directives which must appear exactly once
REQUIRED = ("nonce", "algorithm")

# directives whose quoted value is itself a list of tokens
QUOTED_LISTABLE = ("qop", "cipher")

QUOTED_RESPONSE_DIRECTIVES = frozenset([
    "username",
    "authzid",
    "realm",
    "nonce",
    "cnonce",
    "digest-uri",
    "qop",
])

MAXBUF = 65535

CNONCE_LENGTH = 32

# less strict than the RFC, more strict than \s
_LWS = r"[\r\n \t]*"
_TOKEN = r"[!#$%&'*+\-.0-9A-Z^_`a-z|~]+"
_QUOTED_STR = r'"(?:\\[\x00-\x7f]|[^"\\\x00-\x08\x0a-\x1f\x7f])*"'
_LIST_DELIM = r"(?:{lws},)+{lws}".format(lws=_LWS)
_AUTH_PARAM = r"({token}){lws}={lws}({quoted}|{token})(?:{delim})?".format(
    token=_TOKEN,
    lws=_LWS,
    quoted=_QUOTED_STR,
    delim=_LIST_DELIM,
)

_list_delim_re = re.compile(_LIST_DELIM)
_auth_param_re = re.compile(_AUTH_PARAM)
_unescape_re = re.compile(r"\\(.)", re.DOTALL)
_escape_re = re.compile(r'([\\"])')


def _bad_challenge(challenge: str) -> common.DataFormatError:
    return common.DataFormatError(
        None,
        text="bad challenge: {!r}".format(challenge),
    )


def _split_quoted_list(value: str, challenge: str) -> typing.List[str]:
    items = [item for item in _list_delim_re.split(value) if item]
    if not items:
        raise _bad_challenge(challenge)
    return items


def parse_challenge(challenge: str) -> common.ChallengeParameters:
    """
    Parse a DIGEST-MD5 `challenge` (see :rfc:`2831`, section 2.1.1) into a
    mapping of lower-cased directive names to the list of values the server
    sent for them, in order.

    Quoted values are unescaped. The values of ``qop`` and ``cipher`` are
    split into their tokens.

    Raise :class:`~.DataFormatError` if the challenge has trailing garbage or
    contains no directive at all.
    """
    params = collections.OrderedDict()  # type: common.ChallengeParameters

    pos = 0
    match = _list_delim_re.match(challenge)
    if match is not None:
        pos = match.end()

    while True:
        match = _auth_param_re.match(challenge, pos)
        if match is None:
            break
        pos = match.end()

        key, value = match.group(1).lower(), match.group(2)
        values = params.setdefault(key, [])
        if value.startswith('"'):
            value = _unescape_re.sub(r"\1", value[1:-1])
            if key in QUOTED_LISTABLE:
                values.extend(_split_quoted_list(value, challenge))
                continue
        values.append(value)

    if pos != len(challenge) or not params:
        raise _bad_challenge(challenge)

    return params


def format_response(
        response: typing.Mapping[str, typing.Optional[str]],
        ) -> str:
    """
    Serialise the `response` directives in order, quoting those which need
    quoting and omitting those with a :data:`None` value.
    """
    parts = []
    for key, value in response.items():
        if value is None:
            continue
        if key in QUOTED_RESPONSE_DIRECTIVES:
            parts.append('{}="{}"'.format(key, _escape_re.sub(r"\\\1", value)))
        else:
            parts.append("{}={}".format(key, value))
    return ",".join(parts)


def _H(data: bytes) -> bytes:
    return hashlib.md5(data).digest()


def _HEX(data: bytes) -> bytes:
    return hashlib.md5(data).hexdigest().encode("ascii")


def _to_bytes(value: typing.Union[str, bytes]) -> bytes:
    if isinstance(value, bytes):
        return value
    return value.encode("utf-8")


def compute_a1(
        username: str,
        realm: typing.Optional[str],
        password: typing.Union[str, bytes],
        nonce: str,
        cnonce: str,
        authzid: typing.Optional[str] = None,
        ) -> bytes:
    a0 = _H(
        _to_bytes("{}:{}:".format(username, realm or "")) +
        _to_bytes(password)
    )
    a1 = a0 + _to_bytes(":{}:{}".format(nonce, cnonce))
    if authzid is not None:
        a1 += _to_bytes(":" + authzid)
    return a1


def compute_a2(digest_uri: str, qop: str) -> bytes:
    a2 = "AUTHENTICATE:" + digest_uri
    if qop in ("auth-int", "auth-conf"):
        a2 += ":00000000000000000000000000000000"
    return _to_bytes(a2)


def compute_response(
        username: str,
        realm: typing.Optional[str],
        password: typing.Union[str, bytes],
        nonce: str,
        cnonce: str,
        nc: str,
        qop: str,
        digest_uri: str,
        authzid: typing.Optional[str] = None,
        ) -> str:
    """
    Compute the ``response`` directive as specified in :rfc:`2831`, section
    2.1.2.1. `nc` is the already formatted nonce count. Text is encoded as
    UTF-8; `password` may also be given as :class:`bytes`.
    """
    a1 = compute_a1(username, realm, password, nonce, cnonce, authzid)
    a2 = compute_a2(digest_uri, qop)
    return _HEX(b":".join([
        _HEX(a1),
        _to_bytes(nonce),
        _to_bytes(nc),
        _to_bytes(cnonce),
        _to_bytes(qop),
        _HEX(a2),
    ])).decode("ascii")


def _generate_cnonce() -> str:
    return base64.b64encode(_system_random.getrandbits(
        CNONCE_LENGTH * 8
    ).to_bytes(
        CNONCE_LENGTH, "little"
    )).decode("ascii")


class DIGEST_MD5(statemachine.SASLMechanism):
    """
    The password-based ``DIGEST-MD5`` SASL mechanism (see :rfc:`2831`).

    .. warning::

       ``DIGEST-MD5`` has been deprecated by :rfc:`6331` and should not be
       relied on for security. It is included for compatibility with existing
       servers. Unless `warn_deprecation` is false, a
       :class:`DeprecationWarning` is emitted on construction.

    :param username: Authentication identity which matches the `password`.
    :param password: Password or passphrase for `username`, as
        :class:`str` or :class:`bytes`.
    :param authzid: Authorization identity to act as. If not given, the server
        derives it from `username`.
    :param authcid: Alias for `username`; takes precedence if given.
    :param realm: Namespace which contains `username`. Defaults to the last
        realm offered by the server.
    :param service: Registered service name, such as ``"imap"``, ``"smtp"``
        or ``"ldap"``.
    :param host: Fully qualified host name of the service. Defaults to
        `realm`.
    :param service_name: Generic server name if the service is replicated.
        Ignored if :data:`None` or equal to `host`.

    A mechanism instance can only be used for a single authentication
    attempt. The server sends two challenges: the first one carries the
    nonce and options, the second one the server's ``rspauth``.

    .. automethod:: process

    .. autoattribute:: digest_uri
    """

    mechanism_name = "DIGEST-MD5"

    def __init__(
            self,
            username: typing.Optional[str] = None,
            password: typing.Optional[typing.Union[str, bytes]] = None,
            authzid: typing.Optional[str] = None,
            *,
            authcid: typing.Optional[str] = None,
            realm: typing.Optional[str] = None,
            service: str = "imap",
            host: typing.Optional[str] = None,
            service_name: typing.Optional[str] = None,
            warn_deprecation: bool = True):
        super().__init__()
        if authcid is not None:
            username = authcid
        if username is None:
            raise common.MissingCredentialError("missing username (authcid)")
        if password is None:
            raise common.MissingCredentialError("missing password")
        if warn_deprecation:
            warnings.warn(
                "DIGEST-MD5 SASL mechanism was deprecated by RFC 6331",
                DeprecationWarning,
                stacklevel=2,
            )

        self.username = username
        self.password = password
        self.authzid = authzid
        self.realm = realm
        self.service = service
        self.host = host
        self.service_name = service_name

        # filled from the first challenge
        self.sparams = None  # type: typing.Optional[common.ChallengeParameters]
        self.nonce = None  # type: typing.Optional[str]
        self.charset = None  # type: typing.Optional[str]
        self.qop = None  # type: typing.Optional[typing.List[str]]

        self._stage = common.Stage.AWAITING_FIRST_CHALLENGE
        self._nc = {}  # type: typing.Dict[str, int]

    @property
    def authcid(self) -> str:
        return self.username

    @property
    def stage(self) -> common.Stage:
        return self._stage

    @property
    def digest_uri(self) -> str:
        """
        The principal name of the service, formed from `service`, `host`
        and `service_name`, e.g. ``"imap/elwood.innosoft.com"``.
        """
        host = self.host or ""
        if self.service_name is not None and self.service_name != host:
            return "{}/{}/{}".format(self.service, host, self.service_name)
        return "{}/{}".format(self.service, host)

    def process(
            self,
            challenge: typing.Optional[bytes],
            ) -> bytes:
        """
        Respond to the first challenge with the digest response and to the
        second challenge with an empty response.

        Raise :class:`~.DataFormatError` if the first challenge is invalid and
        :class:`~.ResponseParseError` if the second challenge lacks
        ``rspauth`` or if any further challenge arrives.
        """
        if self._stage == common.Stage.AWAITING_FIRST_CHALLENGE:
            self._process_stage_one(challenge)
            response = self._stage_one_response()
            self._stage = common.Stage.AWAITING_CONFIRMATION
            return response

        if self._stage == common.Stage.AWAITING_CONFIRMATION:
            self._process_stage_two(challenge)
            self._stage = common.Stage.COMPLETE
            return b""

        raise common.ResponseParseError(
            None,
            text="unexpected challenge after completion: {!r}".format(
                challenge),
        )

    def is_done(self) -> bool:
        return self._stage == common.Stage.COMPLETE

    def _process_stage_one(self, challenge: typing.Optional[bytes]) -> None:
        if challenge is None:
            raise common.ResponseParseError(
                None,
                text="DIGEST-MD5 cannot send an initial response")

        try:
            text = challenge.decode("utf-8")
        except UnicodeDecodeError:
            raise common.DataFormatError(
                None,
                text="challenge is not valid UTF-8: {!r}".format(challenge),
            ) from None

        self.sparams = parse_challenge(text)
        logger.debug("DIGEST-MD5 challenge directives: %s",
                     ", ".join(self.sparams))

        # RFC 2831: if qop is absent, "auth" is assumed
        self.qop = self.sparams.get("qop", ["auth"])

        self._guard_stage_one(text)

        self.nonce = self.sparams["nonce"][0]
        charsets = self.sparams.get("charset")
        self.charset = charsets[0] if charsets else None

        if self.realm is None:
            realms = self.sparams.get("realm")
            if realms:
                self.realm = realms[-1]
        if self.host is None:
            self.host = self.realm

    def _guard_stage_one(self, challenge: str) -> None:
        if "auth" not in self.qop:
            raise common.DataFormatError(
                None,
                text="server does not support auth (qop = {!r})".format(
                    self.qop),
            )

        for key in REQUIRED:
            if not self.sparams.get(key):
                raise common.DataFormatError(
                    None,
                    text="server didn't send {!r} ({!r})".format(
                        key, challenge),
                )

        for key in NO_MULTIPLES:
            if len(self.sparams.get(key, ())) > 1:
                raise common.DataFormatError(
                    None,
                    text="server sent multiple {!r} ({!r})".format(
                        key, challenge),
                )

    def _next_nc(self, nonce: str) -> int:
        self._nc[nonce] = self._nc.get(nonce, 0) + 1
        return self._nc[nonce]

    def _stage_one_response(self) -> bytes:
        response = collections.OrderedDict([
            ("nonce", self.nonce),
            ("username", self.username),
            ("realm", self.realm),
            ("cnonce", _generate_cnonce()),
            ("digest-uri", self.digest_uri),
            ("qop", "auth"),
            ("maxbuf", str(MAXBUF)),
            ("nc", "{:08d}".format(self._next_nc(self.nonce))),
            ("charset", self.charset),
        ])

        if self.authzid is not None:
            response["authzid"] = self.authzid

        response["response"] = compute_response(
            self.username,
            self.realm,
            self.password,
            response["nonce"],
            response["cnonce"],
            response["nc"],
            response["qop"],
            response["digest-uri"],
            authzid=self.authzid,
        )

        return format_response(response).encode("utf-8")

    def _process_stage_two(self, challenge: typing.Optional[bytes]) -> None:
        if challenge is None or b"rspauth=" not in challenge:
            raise common.ResponseParseError(
                None,
                text="expected rspauth in challenge: {!r}".format(challenge),
            )
