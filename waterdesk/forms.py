"""Add/edit form state: draft, declarative validation and submission."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from waterdesk.errors import MutationError, ValidationError
from waterdesk.logging import get_logger

logger = get_logger(__name__)

ADD = "add"
EDIT = "edit"

CLOSED = "closed"
OPEN = "open"
SUBMITTING = "submitting"

# Reserved errors key for messages that belong to no single field
API_ERROR_KEY = "api"

PHONE_PATTERN = r"[0-9]{10}"
EMAIL_PATTERN = r"\S+@\S+\.\S+"

Guard = Callable[[Mapping[str, Any], str], Optional[str]]
SubmitFn = Callable[[str, Any, Dict[str, Any]], Dict[str, Any]]


@dataclass(frozen=True)
class FieldRule:
    label: str = ""
    required: bool = False
    pattern: Optional[str] = None
    pattern_message: Optional[str] = None
    numeric_range: Optional[Tuple[Optional[float], Optional[float]]] = None
    range_message: Optional[str] = None

    def describe_range(self, name: str) -> str:
        if self.range_message:
            return self.range_message
        label = self.label or name
        low, high = self.numeric_range or (None, None)
        if low is not None and high is not None:
            return f"{label} must be a number between {low:g} and {high:g}"
        if low is not None:
            return f"{label} must be a number of at least {low:g}"
        if high is not None:
            return f"{label} must be a number of at most {high:g}"
        return f"{label} must be a number"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def parse_number(value: Any) -> Optional[float]:
    try:
        number = float(_text(value).strip())
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def validate(draft: Mapping[str, Any], rules: Mapping[str, FieldRule]) -> Dict[str, str]:
    """Return field -> message for every rule the draft breaks; empty when valid."""
    errors: Dict[str, str] = {}
    for name, rule in rules.items():
        text = _text(draft.get(name))
        blank = not text.strip()
        if blank:
            if rule.required:
                errors[name] = f"{rule.label or name} is required"
            continue
        if rule.pattern and not re.fullmatch(rule.pattern, text):
            errors[name] = rule.pattern_message or f"Invalid {(rule.label or name).lower()} format"
            continue
        if rule.numeric_range is not None:
            number = parse_number(text)
            low, high = rule.numeric_range
            if number is None or (low is not None and number < low) or (high is not None and number > high):
                errors[name] = rule.describe_range(name)
    return errors


def ensure_valid(draft: Mapping[str, Any], rules: Mapping[str, FieldRule]) -> None:
    errors = validate(draft, rules)
    if errors:
        raise ValidationError(errors)


def _draft_value(value: Any) -> Any:
    # populated references arrive as nested documents; the form edits their id
    if isinstance(value, Mapping):
        return value.get("_id", "")
    return "" if value is None else value


class FormState:
    """Draft and lifecycle of one add/edit modal.

    ``closed -> open(add|edit) -> submitting -> closed`` on success, or back to
    ``open`` with ``errors`` set when the backend rejects the draft. Guards are
    business rules that run next to field validation; their messages land in
    ``warnings`` and block submission without being field errors.
    """

    def __init__(
        self,
        template: Mapping[str, Any],
        rules: Mapping[str, FieldRule],
        *,
        guards: Sequence[Guard] = (),
        numeric_fields: Sequence[str] = (),
        normalize: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None,
    ):
        self.template = dict(template)
        self.rules = dict(rules)
        self.guards = list(guards)
        self.numeric_fields = set(numeric_fields) | {n for n, r in self.rules.items() if r.numeric_range}
        self.normalize = normalize
        self.draft: Dict[str, Any] = dict(self.template)
        self.mode = ADD
        self.edit_id: Any = None
        self.errors: Dict[str, str] = {}
        self.warnings: List[str] = []
        self.is_open = False
        self.submitting = False

    @property
    def status(self) -> str:
        if self.submitting:
            return SUBMITTING
        return OPEN if self.is_open else CLOSED

    def _ensure_idle(self) -> None:
        if self.submitting:
            raise RuntimeError("a submission is already in flight")

    def open_add(self) -> None:
        self._ensure_idle()
        self.draft = dict(self.template)
        self.mode = ADD
        self.edit_id = None
        self.errors = {}
        self.is_open = True
        self.warnings = self.check_guards()

    def open_edit(self, record_id: Any, record: Mapping[str, Any]) -> None:
        self._ensure_idle()
        self.draft = {name: _draft_value(record.get(name, default)) for name, default in self.template.items()}
        self.mode = EDIT
        self.edit_id = record_id
        self.errors = {}
        self.is_open = True
        self.warnings = self.check_guards()

    def set_field(self, name: str, value: Any) -> None:
        if not self.is_open:
            raise RuntimeError("form is not open")
        self.draft[name] = value
        self.errors.pop(name, None)
        self.warnings = self.check_guards()

    def check_guards(self) -> List[str]:
        return [msg for msg in (guard(self.draft, self.mode) for guard in self.guards) if msg]

    def validate(self) -> Dict[str, str]:
        self.errors = validate(self.draft, self.rules)
        self.warnings = self.check_guards()
        return self.errors

    def payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name, value in self.draft.items():
            if name in self.numeric_fields and _text(value).strip():
                number = parse_number(value)
                if number is not None:
                    value = int(number) if number.is_integer() else number
            data[name] = value
        if self.normalize is not None:
            data = self.normalize(data)
        return data

    def submit(self, submit_fn: SubmitFn) -> Optional[Dict[str, Any]]:
        """Validate and hand the payload to ``submit_fn``.

        Returns the saved record, or ``None`` when validation, a guard or the
        backend stopped the submission.
        """
        if self.submitting:
            return None
        if not self.is_open:
            raise RuntimeError("form is not open")
        if self.validate() or self.warnings:
            logger.debug("form_submit_blocked", errors=sorted(self.errors), warnings=len(self.warnings))
            return None

        self.submitting = True
        try:
            saved = submit_fn(self.mode, self.edit_id, self.payload())
        except MutationError as exc:
            self.errors = dict(exc.details)
            self.errors[API_ERROR_KEY] = exc.message
            return None
        finally:
            self.submitting = False
        self.close()
        return saved

    def dismiss(self) -> bool:
        """Escape key or backdrop click; ignored while submitting."""
        if self.submitting or not self.is_open:
            return False
        self.close()
        return True

    def close(self) -> None:
        self.is_open = False
        self.draft = dict(self.template)
        self.mode = ADD
        self.edit_id = None
        self.errors = {}
        self.warnings = []


class ModalSession:
    """Scoped modal session around an open form.

    Entering captures the element that had focus; leaving, on any exit path,
    hands it back to ``restore_focus`` and detaches the key handler. Inside the
    session Escape and a click outside the form dismiss it.
    """

    def __init__(
        self,
        form: FormState,
        *,
        prior_focus: Any = None,
        restore_focus: Optional[Callable[[Any], None]] = None,
    ):
        self.form = form
        self.prior_focus = prior_focus
        self.restore_focus = restore_focus
        self.active = False

    def __enter__(self) -> "ModalSession":
        self.active = True
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.active = False
        if self.restore_focus is not None:
            self.restore_focus(self.prior_focus)
        return False

    def handle_key(self, key: str) -> bool:
        if not self.active:
            return False
        if key == "Escape":
            return self.form.dismiss()
        return False

    def click_backdrop(self) -> bool:
        return self.active and self.form.dismiss()
