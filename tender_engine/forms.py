"""
tender_engine/forms.py

Flask-WTF forms validating the JSON request bodies.

NOTE:
- The API is JSON, so forms are fed an explicit MultiDict built from the body
  (None values dropped) and run with CSRF disabled per form.
- Field names are the camelCase JSON keys (WTForms name=...). Errors are reported
  under those keys.
- Money is parsed to Decimal from the string form of the JSON value, never via float
  arithmetic.
"""

from __future__ import annotations

from typing import Any, Optional, Type, TypeVar

from flask import request
from flask_wtf import FlaskForm
from werkzeug.datastructures import ImmutableMultiDict
from wtforms import BooleanField, DateField, Field, StringField
from wtforms.validators import (
    DataRequired,
    InputRequired,
    Length,
    NumberRange,
    Optional as OptionalValue,
    ValidationError,
)

from .errors import validation_failed
from .utils import parse_decimal, parse_id, parse_optional_int

F = TypeVar("F", bound=FlaskForm)


# ---------------------------------------------------------------------
# JSON-aware fields
# ---------------------------------------------------------------------
class MoneyField(Field):
    """Decimal from a JSON number or string (a decimal comma such as "12,5" is accepted)."""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        parsed = parse_decimal(valuelist[0])
        if parsed is None:
            self.data = None
            raise ValueError(self.gettext("Not a valid number."))
        self.data = parsed


class WholeNumberField(Field):
    """Integer from a JSON number (integral floats allowed) or numeric string."""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        raw = valuelist[0]
        if isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        parsed = parse_optional_int(raw)
        if parsed is None:
            self.data = None
            raise ValueError(self.gettext("Not a valid whole number."))
        self.data = parsed


class IdField(Field):
    """Positive integer id."""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        parsed = parse_id(valuelist[0])
        if parsed is None:
            self.data = None
            raise ValueError(self.gettext("Not a valid id."))
        self.data = parsed


class IdListField(Field):
    """
    List of ids as sent. Items are passed through untouched: the services decide
    whether a bad item is skipped (invites) or rejected (line selection).
    """

    def process_formdata(self, valuelist):
        self.data = list(valuelist)


class JSONObjectField(Field):
    def process_formdata(self, valuelist):
        if not valuelist:
            return
        raw = valuelist[0]
        if not isinstance(raw, dict):
            self.data = None
            raise ValueError(self.gettext("Must be a JSON object."))
        self.data = raw


class OverrideScoreField(MoneyField):
    """Evaluator override: {"overallScore": 95} or a bare number."""

    def process_formdata(self, valuelist):
        if valuelist and isinstance(valuelist[0], dict):
            inner = valuelist[0].get("overallScore")
            if inner is None:
                self.raw_data = []
                self.data = None
                return
            valuelist = [inner]
        super().process_formdata(valuelist)


class TextField(StringField):
    """StringField that tolerates JSON numbers and trims whitespace."""

    def process_formdata(self, valuelist):
        if valuelist:
            raw = valuelist[0]
            self.data = None if raw is None else str(raw).strip()


# ---------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------
class InviteForm(FlaskForm):
    supplier_ids = IdListField(
        "Suppliers",
        name="supplierIds",
        default=list,
        validators=[DataRequired(message="At least one supplier id is required.")],
    )


class BidForm(FlaskForm):
    supplier_id = IdField("Supplier", name="supplierId", validators=[InputRequired()])
    price = MoneyField("Price", name="price", validators=[OptionalValue(), NumberRange(min=0)])
    duration_weeks = WholeNumberField(
        "Duration (weeks)", name="durationWeeks", validators=[OptionalValue(), NumberRange(min=0)]
    )
    details = JSONObjectField("Details", name="details", validators=[OptionalValue()])


class ScoreForm(FlaskForm):
    technical_score = MoneyField(
        "Technical score", name="technicalScore", validators=[OptionalValue(), NumberRange(min=0, max=100)]
    )
    override = OverrideScoreField(
        "Override overall score", name="override", validators=[OptionalValue(), NumberRange(min=0, max=100)]
    )


class AwardForm(FlaskForm):
    """POST /packages/<id>/award"""

    supplier_id = IdField("Supplier", name="supplierId", validators=[InputRequired()])
    selected_line_ids = IdListField("Lines", name="selectedLineIds", default=list)
    award_value = MoneyField("Award value", name="awardValue", validators=[OptionalValue(), NumberRange(min=0)])

    override = BooleanField("Override compliance", name="override")
    override_reason = TextField("Override reason", name="overrideReason", validators=[OptionalValue(), Length(max=2000)])

    currency = TextField("Currency", name="currency", validators=[OptionalValue(), Length(min=3, max=3)])
    title = TextField("Title", name="title", validators=[OptionalValue(), Length(max=255)])
    contract_ref = TextField("Contract ref", name="contractRef", validators=[OptionalValue(), Length(max=100)])
    start_date = DateField("Start date", name="startDate", format="%Y-%m-%d", validators=[OptionalValue()])
    end_date = DateField("End date", name="endDate", format="%Y-%m-%d", validators=[OptionalValue()])

    def validate_end_date(self, field):
        if field.data and self.start_date.data and field.data < self.start_date.data:
            raise ValidationError("End date cannot be before start date.")


class DirectAwardForm(AwardForm):
    award_value = MoneyField("Award value", name="awardValue", validators=[InputRequired(), NumberRange(min=0)])


class AwardPayloadForm(AwardForm):
    """POST /awards"""

    project_id = IdField("Project", name="projectId", validators=[InputRequired()])
    package_id = IdField("Package", name="packageId", validators=[InputRequired()])
    budget_line_ids = IdListField("Budget lines", name="budgetLineIds", default=list)


class TenderForm(FlaskForm):
    title = TextField("Title", name="title", validators=[OptionalValue(), Length(max=255)])


class InternalResourceForm(FlaskForm):
    notes = TextField("Notes", name="notes", validators=[OptionalValue(), Length(max=4000)])


class ContractStatusForm(FlaskForm):
    status = TextField("Status", name="status", validators=[DataRequired()])


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------
def load_form(form_cls: Type[F], payload: Optional[Any] = None) -> F:
    """
    Build and validate a form from the JSON body (or an explicit payload).

    Raises PreconditionFailed(VALIDATION_FAILED) with per-field errors.
    """
    if payload is None:
        payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise validation_failed({"body": ["Expected a JSON object."]})

    cleaned = {key: value for key, value in payload.items() if value is not None}
    form = form_cls(formdata=ImmutableMultiDict(cleaned), meta={"csrf": False})
    if not form.validate():
        raise validation_failed({field.name: field.errors for field in form if field.errors})
    return form
