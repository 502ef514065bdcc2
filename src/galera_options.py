# Copyright 2024 Canonical Ltd.
# See LICENSE file for licensing details.

"""Codecs for wsrep `key=value` directives and provider options."""

from typing import Dict, Optional

from custom_exceptions import ParseError

WSREP_OPT_GMCAST_LISTEN_ADDR = "gmcast.listen_addr"
WSREP_OPT_IST_RECV_ADDR = "ist.recv_addr"

PROVIDER_OPTIONS_SEPARATOR = ";"


class KVOption:
    """A single `key=value` directive, optionally with a double quoted value."""

    def __init__(self, key: str, value: str, quoted: bool = False):
        self.key = key
        self.value = value
        self.quoted = quoted

    def __eq__(self, other) -> bool:
        if not isinstance(other, KVOption):
            return NotImplemented
        return (self.key, self.value, self.quoted) == (other.key, other.value, other.quoted)

    def __repr__(self) -> str:
        return f"KVOption(key={self.key!r}, value={self.value!r}, quoted={self.quoted!r})"

    def marshal(self) -> str:
        """Render the directive as `k=v` or `k="v"`."""
        if self.quoted:
            return f'{self.key}="{self.value}"'
        return f"{self.key}={self.value}"

    @classmethod
    def unmarshal(cls, text: str) -> "KVOption":
        """Parse a directive.

        Only the first `=` separates key and value, so values may contain `=`.
        Quoting is preserved as a flag and never inferred from the content.

        Raises:
            ParseError: on blank text or when there is no `=`.
        """
        text = text.strip()
        if not text:
            raise ParseError("empty input")

        key, sep, value = text.partition("=")
        if not sep:
            raise ParseError("invalid input")

        key = key.strip()
        value = value.strip()
        quoted = len(value) >= 2 and value.startswith('"') and value.endswith('"')
        if quoted:
            value = value[1:-1]
        return cls(key, value, quoted)


class ProviderOptions:
    """The `;` separated option string passed to the Galera provider.

    Serialization always sorts keys, so the same set of options renders the
    same string regardless of insertion order. Values must not contain `;`.
    """

    def __init__(self, entries: Optional[Dict[str, str]] = None):
        self.entries: Dict[str, str] = dict(entries or {})

    def __eq__(self, other) -> bool:
        if not isinstance(other, ProviderOptions):
            return NotImplemented
        return self.entries == other.entries

    def __repr__(self) -> str:
        return f"ProviderOptions({self.entries!r})"

    def marshal(self) -> str:
        """Render the options sorted by key, each unquoted."""
        return PROVIDER_OPTIONS_SEPARATOR.join(
            KVOption(key, self.entries[key]).marshal() for key in sorted(self.entries)
        )

    @classmethod
    def unmarshal(cls, text: str) -> "ProviderOptions":
        """Parse a provider options string.

        Raises:
            ParseError: on blank text or on the first clause that fails to parse.
        """
        if not text.strip():
            raise ParseError("empty input")

        entries = {}
        for clause in text.split(PROVIDER_OPTIONS_SEPARATOR):
            kv_option = KVOption.unmarshal(clause)
            entries[kv_option.key] = kv_option.value
        return cls(entries)

    def update(self, overrides: Dict[str, str]) -> None:
        """Merge `overrides` into the options, overriding on key collision.

        Later calls win, so apply layers in ascending priority.
        """
        self.entries.update(overrides)
