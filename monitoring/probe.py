"""
============================================================================
PROBEMON - PROBE BASE
============================================================================
The common contract every health probe implements, and the shared
routine that turns a raw configuration record into a typed config.

Probe lifecycle
---------------
1.  Built once at startup from a raw record (a plain dict read from the
    checks file). ``consume_record()`` checks mandatory/optional keys,
    validates values through the kind's pydantic model and removes every
    recognized key from the record. Whatever is left over is an unknown
    option; the loader rejects it.
2.  The notifier list is copied into the probe at construction. Later
    changes to the application's notifier list do not reach probes that
    already exist.
3.  The engine calls ``perform()`` once per cycle from a worker thread.
    ``try_begin()`` / ``finish()`` keep a second call for the same probe
    from starting while one is still running.
4.  Status is only read and written through ``get_status()`` /
    ``set_status()``, which hold the probe's lock.

perform() contract
------------------
Expected operational conditions (timeouts, refused connections, DNS
errors, HTTP errors, unexpected answers) come back as a CheckResult with a
non-empty reason. Anything else escaping perform() is a programmer error.

License: MIT
============================================================================
"""

import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterable, Optional, Sequence, Set, Tuple, Type, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from config.constants import Defaults
from exceptions import InternalInvariantError, InvalidFieldError, MissingFieldError


Scalar = Union[str, int, float, bool, None]


# ============================================================================
# CHECK RESULT
# ============================================================================

@dataclass(frozen=True)
class CheckResult:
    """
    Outcome of one probe execution. An empty reason means the check
    passed; anything else describes the failure.
    """

    reason: str = ""

    @property
    def ok(self) -> bool:
        return not self.reason


# ============================================================================
# CONFIG RECORDS
# ============================================================================

class ProbeConfig(BaseModel):
    """Options shared by every probe kind."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    min_failures: int = Field(default=Defaults.MIN_FAILURES, ge=1, alias="minFailures")
    failure_window: int = Field(
        default=Defaults.FAILURE_WINDOW,
        ge=1,
        validation_alias=AliasChoices("failureWindow", "failureWindowSeconds"),
    )
    subject: Optional[str] = None


def record_keys(model: Type[BaseModel]) -> Tuple[Set[str], Set[str]]:
    """
    Recognized record keys of a config model, split into the mandatory
    set and the optional set.
    """
    mandatory: Set[str] = set()
    optional: Set[str] = set()

    for name, info in model.model_fields.items():
        if isinstance(info.validation_alias, AliasChoices):
            keys = {choice for choice in info.validation_alias.choices if isinstance(choice, str)}
        elif isinstance(info.validation_alias, str):
            keys = {info.validation_alias}
        else:
            keys = {info.alias or name}

        if info.is_required():
            mandatory |= keys
        else:
            optional |= keys

    return mandatory, optional


def check_record(
    record: Dict[str, Any],
    mandatory: Iterable[str],
    optional: Iterable[str] = (),
    kind: Optional[str] = None,
) -> Set[str]:
    """
    Verify every mandatory key is present.

    Returns the recognized keys present in ``record``. Keys that are not
    recognized are left alone here; they are reported once construction
    has consumed everything it understands.

    Raises:
        MissingFieldError: if a mandatory key is absent
    """
    mandatory = set(mandatory)
    missing = mandatory - set(record)
    if missing:
        raise MissingFieldError(missing, kind=kind)

    recognized = mandatory | set(optional)
    return {key for key in record if key in recognized}


def consume_record(
    record: Dict[str, Any],
    model: Type[BaseModel],
    kind: Optional[str] = None,
) -> Any:
    """
    Validate ``record`` against ``model`` and remove the consumed keys.

    Raises:
        MissingFieldError: mandatory key absent
        InvalidFieldError: recognized key with an unusable value
    """
    mandatory, optional = record_keys(model)
    present = check_record(record, mandatory, optional, kind=kind)

    try:
        config = model.model_validate({key: record[key] for key in present})
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error.get("loc", ())) or None
        raise InvalidFieldError(
            f"Invalid value for '{field}'{f' in {kind}' if kind else ''}: {error.get('msg')}",
            field=field,
            value=error.get("input"),
            kind=kind,
            cause=e,
        ) from e

    for key in present:
        del record[key]

    return config


# ============================================================================
# PROBE BASE CLASS
# ============================================================================

class Probe(ABC):
    """
    Base class for all probes.

    Subclasses set ``KIND`` and ``config_model`` and implement
    ``perform()`` and ``describe()``.

    Identity is object identity: two probes with the same options are
    still two probes, each with its own failure history.
    """

    KIND: ClassVar[str] = ""
    config_model: ClassVar[Type[ProbeConfig]] = ProbeConfig

    def __init__(self, record: Dict[str, Any], notifiers: Sequence[Any] = ()):
        self.config = consume_record(record, self.config_model, kind=self.KIND)

        self.min_failures: int = self.config.min_failures
        self.failure_window: int = self.config.failure_window

        # copied, never shared with the caller's list
        self.notifiers: Tuple[Any, ...] = tuple(notifiers)

        self.attributes: Dict[str, Scalar] = {}
        self.results: Dict[str, Dict[str, Scalar]] = {}
        if self.config.subject:
            self.attributes["subject"] = self.config.subject

        self.last_checked: Optional[float] = None
        self.error_count: int = 0

        self._status = CheckResult()
        self._status_lock = threading.Lock()
        self._run_lock = threading.Lock()

    # ------------------------------------------------------------------
    # CONTRACT
    # ------------------------------------------------------------------

    @abstractmethod
    def perform(self) -> CheckResult:
        """Execute one check. Blocking; bounded by the probe's own timeout."""

    @abstractmethod
    def describe(self) -> str:
        """Stable human summary of the configured parameters."""

    def kind(self) -> str:
        return self.KIND

    # ------------------------------------------------------------------
    # STATUS CELL
    # ------------------------------------------------------------------

    def get_status(self) -> CheckResult:
        with self._status_lock:
            return self._status

    def set_status(self, result: CheckResult) -> None:
        if not isinstance(result, CheckResult):
            raise InternalInvariantError(
                f"{self.KIND} probe produced {type(result).__name__}, not CheckResult",
                component=self.KIND,
            )
        with self._status_lock:
            self._status = result
            self.last_checked = time.time()

    # ------------------------------------------------------------------
    # RE-ENTRY GUARD
    # ------------------------------------------------------------------

    def try_begin(self) -> bool:
        """Claim the probe for one perform() call. False if already running."""
        return self._run_lock.acquire(blocking=False)

    def finish(self) -> None:
        """Release the claim taken by try_begin()."""
        if not self._run_lock.locked():
            raise InternalInvariantError(
                f"finish() without try_begin() on {self.describe()}",
                component=self.KIND,
            )
        self._run_lock.release()

    @property
    def in_flight(self) -> bool:
        return self._run_lock.locked()

    # ------------------------------------------------------------------
    # OBSERVABILITY
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Status-surface view of this probe."""
        with self._status_lock:
            status = self._status
            last_checked = self.last_checked
        return {
            "kind": self.kind(),
            "description": self.describe(),
            "ok": status.ok,
            "reason": status.reason,
            "last_checked": last_checked,
            "in_flight": self.in_flight,
            "error_count": self.error_count,
            "min_failures": self.min_failures,
            "failure_window": self.failure_window,
            "attributes": dict(self.attributes),
        }

    def _subject_prefix(self) -> str:
        return f"[{self.config.subject}] " if self.config.subject else ""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()}>"


# ============================================================================
# KIND REGISTRY
# ============================================================================

PROBE_REGISTRY: Dict[str, Type[Probe]] = {}


def register_probe(cls: Type[Probe]) -> Type[Probe]:
    """Class decorator adding a probe class to the kind registry."""
    if not cls.KIND:
        raise InternalInvariantError(f"{cls.__name__} has no KIND")
    if cls.KIND in PROBE_REGISTRY and PROBE_REGISTRY[cls.KIND] is not cls:
        raise InternalInvariantError(f"Probe kind '{cls.KIND}' registered twice")
    PROBE_REGISTRY[cls.KIND] = cls
    return cls
