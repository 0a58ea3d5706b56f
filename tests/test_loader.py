"""
Tests for the checks file loader: notifier scoping, item validation and
error reporting.
"""

import pytest

from conftest import RecordingNotifier
from config.loader import apply_checks, load_checks
from exceptions import (
    ConfigurationError,
    InvalidFieldError,
    MissingFieldError,
    UnknownFieldError,
    UnknownKindError,
)
from monitoring.context import MonitorContext
from monitoring.network_probes import PingProbe, TCPPortClosedProbe
from monitoring.notifiers import LogNotifier, NtfyNotifier


# ============================================================================
# NOTIFIER SCOPING
# ============================================================================

class TestNotifierScoping:
    def test_probe_gets_notifiers_defined_before_it(self):
        context = apply_checks([
            {"ping": {"servers": ["192.0.2.1"]}},
            {"notifier": {"type": "log"}},
            {"tcpportclosed": {"servers": ["192.0.2.1"], "ports": [23]}},
        ])

        early, late = context.probes
        assert isinstance(early, PingProbe) and early.notifiers == ()
        assert isinstance(late, TCPPortClosedProbe)
        assert [type(n) for n in late.notifiers] == [LogNotifier]

    def test_clear_notifiers(self):
        context = apply_checks([
            {"notifier": {"type": "log"}},
            {"ping": {"servers": "db.example.com"}},
            {"clearNotifiers": True},
            {"notifier": {"type": "ntfy", "topic": "ops"}},
            {"ping": {"servers": "b"}},
        ])

        first, second = context.probes
        assert [type(n) for n in first.notifiers] == [LogNotifier]
        assert [type(n) for n in second.notifiers] == [NtfyNotifier]
        assert len(context.all_notifiers()) == 2

    def test_clear_notifiers_false_is_a_no_op(self):
        context = apply_checks([
            {"notifier": {"type": "log"}},
            {"clearNotifiers": False},
            {"ping": {"servers": "db.example.com"}},
        ])
        assert len(context.probes[0].notifiers) == 1

    def test_settings_notifiers_come_first(self):
        preset = RecordingNotifier()
        context = apply_checks(
            [{"notifier": {"type": "log"}}, {"ping": {"servers": "db.example.com"}}],
            MonitorContext([preset]),
        )
        assert context.probes[0].notifiers[0] is preset
        assert len(context.probes[0].notifiers) == 2


# ============================================================================
# VALIDATION
# ============================================================================

class TestValidation:
    def test_unknown_probe_kind(self):
        with pytest.raises(UnknownKindError) as exc_info:
            apply_checks([{"notifier": {"type": "log"}}, {"smtp": {"host": "x"}}], source="checks.yaml")

        assert exc_info.value.message.startswith("checks.yaml item 2: ")
        assert exc_info.value.details["item"] == 2

    def test_unknown_option(self):
        with pytest.raises(UnknownFieldError) as exc_info:
            apply_checks([{"ping": {"servers": "a", "count": 3}}])

        assert exc_info.value.details["unknown"] == ["count"]
        assert "item 1" in exc_info.value.message

    def test_unknown_notifier_option(self):
        with pytest.raises(UnknownFieldError):
            apply_checks([{"notifier": {"type": "log", "colour": "red"}}])

    def test_notifier_without_type(self):
        with pytest.raises(MissingFieldError):
            apply_checks([{"notifier": {"topic": "ops"}}])

    def test_missing_mandatory_probe_option(self):
        with pytest.raises(MissingFieldError):
            apply_checks([{"tcpportclosed": {"servers": ["db.example.com"]}}])

    def test_item_with_two_keys(self):
        with pytest.raises(ConfigurationError):
            apply_checks([{"ping": {"servers": "db.example.com"}, "notifier": {"type": "log"}}])

    def test_clear_notifiers_needs_bool(self):
        with pytest.raises(InvalidFieldError):
            apply_checks([{"clearNotifiers": "yes"}])

    def test_options_must_be_a_mapping(self):
        with pytest.raises(InvalidFieldError):
            apply_checks([{"ping": ["a", "b"]}])

    def test_document_must_be_a_list(self):
        with pytest.raises(ConfigurationError):
            apply_checks({"ping": {"servers": "db.example.com"}})

    def test_parsed_document_not_mutated(self):
        document = [{"ping": {"servers": "a", "timeout": 1}}]
        apply_checks(document)
        assert document == [{"ping": {"servers": "a", "timeout": 1}}]


# ============================================================================
# FILES
# ============================================================================

class TestLoadChecks:
    def test_yaml_file(self, tmp_path):
        path = tmp_path / "checks.yaml"
        path.write_text(
            "checks:\n"
            "  - notifier:\n"
            "      type: log\n"
            "  - https:\n"
            "      url: https://example.com/\n"
            "      minCertDays: 21\n"
            "  - dns:\n"
            "      server: 192.0.2.53\n"
            "      name: example.com\n"
            "      type: A\n"
            "      acceptable: 192.0.2.1\n",
            encoding="utf-8",
        )

        context = load_checks(path)

        assert [probe.kind() for probe in context.probes] == ["https", "dns"]
        assert context.probes[0].config.min_cert_days == 21

    def test_empty_file(self, tmp_path):
        path = tmp_path / "checks.yaml"
        path.write_text("", encoding="utf-8")
        assert len(load_checks(path)) == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_checks(tmp_path / "nope.yaml")
        assert "Cannot read checks file" in exc_info.value.message

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "checks.yaml"
        path.write_text("- ping: {servers: [a\n", encoding="utf-8")

        with pytest.raises(ConfigurationError) as exc_info:
            load_checks(path)
        assert "Malformed YAML" in exc_info.value.message
