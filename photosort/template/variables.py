"""
Variable table and resolver.

Leaf variables are answered by a single metadata provider. Composed
variables (`date`, `date.year`, ...) try an ordered list of date sources
and keep the first one that has a value.
"""
import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from ..exceptions import MetadataReadError, VariableUnavailable
from ..metadata.providers import (
    ALL_PROVIDERS,
    DATE_FIELDS,
    Value,
    extract_field,
    split_date_field,
)
from ..models import FileHandle

# Fallback priority of the composed `date` variables.
DATE_SOURCES: Tuple[str, ...] = ("exif.date", "file.name.date", "file.md.creation_date")

COMPOSED_VARIABLES: Dict[str, Tuple[str, ...]] = {
    "date": DATE_SOURCES,
    **{f"date.{f}": tuple(f"{src}.{f}" for src in DATE_SOURCES) for f in DATE_FIELDS},
}


def format_value(value: Value, field: Optional[str] = None) -> str:
    """Dates as YYYY-MM-DD, years on 4 digits, months and days on 2."""
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, int):
        return f"{value:04d}" if field == "year" else f"{value:02d}"
    return str(value)


class VariableResolver:
    def __init__(self, providers: Iterable = ALL_PROVIDERS):
        self._providers = {}
        for provider in providers:
            for name in provider.names:
                self._providers[name] = provider

    @property
    def names(self) -> List[str]:
        """Every supported variable name, leaf and composed."""
        return sorted(set(self._providers) | set(COMPOSED_VARIABLES))

    def is_supported(self, name: str) -> bool:
        return name in self._providers or name in COMPOSED_VARIABLES

    def resolve(self, name: str, handle: FileHandle) -> Optional[str]:
        """
        Returns the rendered value of `name` for `handle`, or None when no
        source has a value.

        Raises:
            KeyError: `name` is not a supported variable.
        """
        _, field = split_date_field(name)

        if name in COMPOSED_VARIABLES:
            value = self._first_available(COMPOSED_VARIABLES[name], handle)
        elif name in self._providers:
            value = self._lookup(name, handle)
        else:
            raise KeyError(name)

        if value is None:
            return None
        return format_value(value, field)

    def require(self, name: str, handle: FileHandle) -> str:
        value = self.resolve(name, handle)
        if value is None:
            raise VariableUnavailable(name)
        return value

    def _first_available(self, sources: Tuple[str, ...], handle: FileHandle) -> Optional[Value]:
        # The whole date is taken from the winning source, then the field is
        # extracted, so year/month/day of one file always agree.
        for source in sources:
            base, field = split_date_field(source)
            value = self._lookup(base, handle)
            if value is not None:
                logging.debug(f"{source} resolved from {base} for {handle.path}")
                return extract_field(value, field)
        return None

    def _lookup(self, name: str, handle: FileHandle) -> Optional[Value]:
        provider = self._providers[name]
        try:
            return provider.lookup(name, handle)
        except MetadataReadError as e:
            # Downgraded to "unavailable" but never dropped silently
            if all(str(d) != str(e) for d in handle.diagnostics):
                handle.diagnostics.append(e)
                logging.warning(f"{e}; treating {name} as unavailable")
            return None
