"""
Checks File Loader for Probemon

Reads the YAML checks file and builds notifiers and probes into a
MonitorContext. The file is an ordered list; each item is a mapping with
exactly one key:

    - notifier:                  # append a notifier to the current list
        type: ntfy
        topic: my-alerts
    - clearNotifiers: true       # empty the current list
    - https:                     # any other key is a probe kind
        url: https://example.com
        minCertDays: 21

Probes copy the current notifier list when they are built, so a notifier
only reaches the probes listed after it.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from exceptions import (
    ConfigurationError,
    InvalidFieldError,
    MissingFieldError,
    UnknownFieldError,
)
from monitoring.context import MonitorContext
from monitoring.notifiers import build_notifier
from utils.logger import get_logger


logger = get_logger("ChecksLoader")

NOTIFIER_KEY = "notifier"
CLEAR_NOTIFIERS_KEY = "clearNotifiers"


def load_checks(path: Union[str, Path], context: Optional[MonitorContext] = None) -> MonitorContext:
    """
    Read ``path`` and populate ``context`` (a new one if omitted).

    Raises:
        ConfigurationError: unreadable file, malformed YAML, or any
            invalid item; the message names the item index
    """
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read checks file {path}: {e.strerror or e}",
            config_key="checks_file",
            cause=e
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Malformed YAML in checks file {path}: {e}",
            config_key="checks_file",
            cause=e
        ) from e

    context = apply_checks(document, context, source=str(path))
    logger.info(
        f"[Loader] ✓ Loaded {len(context.probes)} probe(s) and "
        f"{len(context.notifiers)} notifier(s) from {path}"
    )
    return context


def apply_checks(
    document: Any,
    context: Optional[MonitorContext] = None,
    source: str = "<checks>"
) -> MonitorContext:
    """
    Apply an already-parsed checks document to ``context``.

    Args:
        document: A list of items, or a mapping holding that list under
            ``checks``
        context: Context to populate
        source: Name used in error messages

    Returns:
        The populated context
    """
    context = context if context is not None else MonitorContext()

    if document is None:
        items: List[Any] = []
    elif isinstance(document, dict) and set(document) == {"checks"}:
        items = document["checks"] or []
    else:
        items = document

    if not isinstance(items, list):
        raise ConfigurationError(
            f"{source}: expected a list of checks, got {type(items).__name__}",
            config_key="checks_file",
            expected_type=list
        )

    for index, item in enumerate(items, start=1):
        try:
            _apply_item(item, context)
        except ConfigurationError as e:
            e.message = f"{source} item {index}: {e.message}"
            raise e.with_details(item=index, source=source)

    return context


def _apply_item(item: Any, context: MonitorContext) -> None:
    if not isinstance(item, dict) or len(item) != 1:
        raise ConfigurationError(
            "each item must be a mapping with exactly one key",
            expected_type=dict
        )

    (key, value), = item.items()
    key = str(key)

    if key == CLEAR_NOTIFIERS_KEY:
        if not isinstance(value, bool):
            raise InvalidFieldError(
                f"'{CLEAR_NOTIFIERS_KEY}' takes true or false",
                field=CLEAR_NOTIFIERS_KEY,
                value=value
            )
        if value:
            context.clear_notifiers()
        return

    record = _as_record(key, value)

    if key == NOTIFIER_KEY:
        kind = record.pop("type", None)
        if kind is None:
            raise MissingFieldError(["type"], kind=NOTIFIER_KEY)
        kind = str(kind)
        notifier = build_notifier(kind, record)
        _reject_leftovers(record, f"notifier {kind}")
        context.add_notifier(notifier)
        return

    probe = context.build_probe(key, record)
    _reject_leftovers(record, key)
    logger.debug(f"[Loader] Probe added: {probe.describe()}")


def _as_record(key: str, value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidFieldError(
            f"options of '{key}' must be a mapping",
            field=key,
            value=value,
            kind=key
        )
    # construction consumes keys; never mutate the parsed document
    return {str(k): v for k, v in value.items()}


def _reject_leftovers(record: Dict[str, Any], kind: str) -> None:
    if record:
        raise UnknownFieldError(record.keys(), kind=kind)
