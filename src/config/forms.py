"""Form definition loading and caching.

Definitions are JSON documents named ``<form_id>.json``. They are parsed
into frozen ``FormDefinition`` models on first use and cached for the life
of the ``FormConfigCache`` that loaded them.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from src.models.errors import InvalidFormDefinitionError, UnknownFormError
from src.models.forms import FormDefinition

logger = logging.getLogger(__name__)


class FormLoader(Protocol):
    """Source of raw form definitions."""

    def load(self, form_id: str) -> FormDefinition:
        """Load and validate one definition.

        Raises:
            UnknownFormError: If no definition exists for ``form_id``.
            InvalidFormDefinitionError: If the definition is malformed.
        """
        ...

    def available(self) -> list[str]:
        """Return the form ids this loader can resolve."""
        ...


def parse_form_definition(data: object, form_id: str) -> FormDefinition:
    """Validate a raw mapping into a FormDefinition.

    Args:
        data: Decoded JSON document.
        form_id: Identifier the document was requested under.

    Raises:
        InvalidFormDefinitionError: If validation fails or the document
            declares a different form id.
    """
    if not isinstance(data, dict):
        raise InvalidFormDefinitionError(form_id, "definition must be a JSON object")
    data = {"form_id": form_id, **data}
    try:
        definition = FormDefinition.model_validate(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidFormDefinitionError(form_id, errors) from e
    if definition.form_id != form_id:
        raise InvalidFormDefinitionError(
            form_id, f"declares form_id {definition.form_id!r}"
        )
    return definition


class DirectoryFormLoader:
    """Loads form definitions from a directory of JSON files."""

    def __init__(self, config_dir: Path | str):
        """Initialize the loader.

        Args:
            config_dir: Directory containing ``<form_id>.json`` files.
        """
        self.config_dir = Path(config_dir)

    def _get_path(self, form_id: str) -> Path:
        return self.config_dir / f"{form_id}.json"

    def load(self, form_id: str) -> FormDefinition:
        # Form ids come from untrusted payloads; refuse path tricks
        if not form_id or form_id.startswith(".") or any(c in form_id for c in "/\\"):
            raise UnknownFormError(form_id)

        path = self._get_path(form_id)
        if not path.is_file():
            raise UnknownFormError(form_id)

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidFormDefinitionError(form_id, f"invalid JSON: {e}") from e
        except OSError as e:
            raise InvalidFormDefinitionError(form_id, f"unreadable: {e}") from e

        definition = parse_form_definition(data, form_id)
        logger.info(
            "Loaded form definition %s (version %s)", form_id, definition.version
        )
        return definition

    def available(self) -> list[str]:
        if not self.config_dir.is_dir():
            return []
        return sorted(p.stem for p in self.config_dir.glob("*.json"))


class FormConfigCache:
    """Process-wide cache of resolved form definitions.

    Definitions are loaded lazily on first ``get`` and never mutated after.
    Failed loads are not cached, so a fixed file is picked up on the next
    request.
    """

    def __init__(self, loader: FormLoader):
        self._loader = loader
        self._definitions: dict[str, FormDefinition] = {}
        self._lock = threading.Lock()

    def get(self, form_id: str) -> FormDefinition:
        """Return the definition for ``form_id``.

        Raises:
            UnknownFormError: If the form does not exist.
            InvalidFormDefinitionError: If the definition is malformed.
        """
        definition = self._definitions.get(form_id)
        if definition is not None:
            return definition

        with self._lock:
            definition = self._definitions.get(form_id)
            if definition is None:
                definition = self._loader.load(form_id)
                self._definitions[form_id] = definition
        return definition

    def preload(self) -> list[str]:
        """Load every available definition, failing on the first bad one."""
        loaded = []
        for form_id in self._loader.available():
            self.get(form_id)
            loaded.append(form_id)
        return loaded

    def invalidate(self, form_id: str | None = None) -> None:
        """Drop one cached definition, or all of them."""
        with self._lock:
            if form_id is None:
                self._definitions.clear()
            else:
                self._definitions.pop(form_id, None)

    def cached(self) -> list[str]:
        return sorted(self._definitions)


class StaticFormLoader:
    """Serves definitions already held in memory."""

    def __init__(self, definitions: list[FormDefinition]):
        self._definitions = {d.form_id: d for d in definitions}

    def load(self, form_id: str) -> FormDefinition:
        try:
            return self._definitions[form_id]
        except KeyError:
            raise UnknownFormError(form_id) from None

    def available(self) -> list[str]:
        return sorted(self._definitions)
