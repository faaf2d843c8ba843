import json
import unittest
from dataclasses import FrozenInstanceError

from tests._test_path import SRC  # noqa: F401

from photocheck.validation.report import CheckResult, Severity, ValidationError, ValidationResult


def _err(code, severity):
    return ValidationError(code=code, message=code.lower(), severity=severity)


class TestReport(unittest.TestCase):
    def test_error_frozen(self):
        e = _err("FILE_TOO_LARGE", Severity.CRITICAL)
        with self.assertRaises(FrozenInstanceError):
            e.code = "X"  # type: ignore[misc]

    def test_critical_and_warnings_split(self):
        result = ValidationResult(
            is_valid=False,
            compliance_score=42.0,
            errors=[
                _err("INVALID_DIMENSIONS", Severity.CRITICAL),
                _err("LOW_SHARPNESS", Severity.WARNING),
                _err("LOW_FACE_CONFIDENCE", Severity.INFO),
            ],
        )
        self.assertEqual([e.code for e in result.critical_errors], ["INVALID_DIMENSIONS"])
        self.assertEqual([e.code for e in result.warnings], ["LOW_SHARPNESS", "LOW_FACE_CONFIDENCE"])
        self.assertTrue(result.has_errors)
        self.assertEqual(result.codes, ["INVALID_DIMENSIONS", "LOW_SHARPNESS", "LOW_FACE_CONFIDENCE"])
        self.assertEqual(result.status_message, "Photo has 1 issue to fix")

    def test_valid_status(self):
        result = ValidationResult(is_valid=True, compliance_score=95.0, errors=[_err("LOW_SHARPNESS", Severity.WARNING)])
        self.assertFalse(result.has_errors)
        self.assertEqual(result.status_message, "Photo meets all requirements")

    def test_to_dict_is_json_serializable(self):
        result = ValidationResult(
            is_valid=True,
            compliance_score=100.0,
            errors=[ValidationError("HIGH_NOISE", "noisy", Severity.WARNING, "retake", {"noise": 12.5})],
            checks={"noise": False},
            metrics={"noise": 0.75},
            analysis={"noise": {"noise": 12.5}},
        )
        d = json.loads(json.dumps(result.to_dict()))
        self.assertEqual(d["errors"][0]["severity"], "warning")
        self.assertEqual(d["errors"][0]["details"], {"noise": 12.5})
        self.assertEqual(d["analysis"]["noise"]["noise"], 12.5)

    def test_check_result_defaults(self):
        r = CheckResult(name="format", passed=True, score=1.0)
        self.assertEqual(r.issues, [])
        self.assertEqual(r.details, {})


if __name__ == "__main__":
    unittest.main()
