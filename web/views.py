"""
Flask views for the charge billing service.

JSON endpoints used by the tenant dashboard and the landlord financial view.
The caller supplies the charge, the tenancy start date and the ledger slice;
nothing is persisted here.
"""
from flask import Blueprint, request, jsonify
from werkzeug.utils import secure_filename
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import hashlib
import json
import logging
import tempfile

from app import cache
from billing_engine import (
    CADENCE_POLICIES,
    Cadence,
    ChargeDefinition,
    ChargePaymentStatus,
    ChargePreference,
    InvalidChargeDefinition,
    LedgerSchemaError,
    calculate_kpis,
    charge_badge,
    explain_classifications,
    generate_findings,
    load_ledger,
    normalize_payment_ledger,
    reconcile,
    records_from_dicts,
)
from billing_engine.models import coerce_date, coerce_datetime
from config import config

logger = logging.getLogger(__name__)
bp = Blueprint('billing', __name__, url_prefix='/api')


class BadRequest(ValueError):
    """Malformed request payload."""


# ==================== Helpers ====================

def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body


def _parse_cadence(value: Optional[str]) -> Optional[Cadence]:
    if value in (None, ""):
        return None
    try:
        return Cadence(value)
    except ValueError:
        raise BadRequest(f"Unknown frequency '{value}'")


def _parse_date(value: Any, name: str) -> Optional[date]:
    try:
        return coerce_date(value)
    except ValueError:
        raise BadRequest(f"'{name}' is not an ISO date: {value!r}")


def _parse_policy(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if value not in CADENCE_POLICIES:
        raise BadRequest(f"Unknown cadence policy '{value}'")
    return value


def _parse_now(body: Dict[str, Any]) -> date:
    return _parse_date(body.get("now"), "now") or date.today()


def _parse_datetime(value: Any, name: str) -> Optional[datetime]:
    try:
        return coerce_datetime(value)
    except ValueError:
        raise BadRequest(f"'{name}' is not an ISO timestamp: {value!r}")


def _parse_preference(frequency: Any, locked_at: Any = None,
                      name: str = "preferred_frequency") -> Optional[ChargePreference]:
    """A tenant's frequency choice, optionally with the time it was locked."""
    if isinstance(frequency, dict):
        locked_at = frequency.get("locked_at")
        frequency = frequency.get("frequency")
    elif frequency is not None and not isinstance(frequency, str):
        raise BadRequest(f"'{name}' must be a frequency or a {{frequency, locked_at}} object")

    locked = _parse_datetime(locked_at, f"{name}.locked_at")
    cadence = _parse_cadence(frequency)
    if cadence is None:
        return None
    return ChargePreference(cadence=cadence, locked_at=locked)


def ledger_version(rows: List[Dict[str, Any]]) -> str:
    """Stable hash of a ledger slice, used as the cache version."""
    payload = json.dumps(rows, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _status_cache_key(charge_row: Dict[str, Any], anchor: Optional[date], version: str,
                      now: date, preference: Optional[ChargePreference], policy: Optional[str]) -> str:
    parts = json.dumps({
        "charge": charge_row,
        "anchor": anchor.isoformat() if anchor else None,
        "now": now.isoformat(),
        "preferred": preference.cadence.value if preference else None,
        "locked_at": preference.locked_at.isoformat() if preference and preference.locked_at else None,
        "policy": policy,
        "ledger": version,
    }, sort_keys=True, default=str)
    digest = hashlib.sha256(parts.encode("utf-8")).hexdigest()
    return f"{config.cache.key_prefix}:{charge_row.get('id')}:{digest}"


def evaluate_charge(charge_row: Dict[str, Any], anchor: Optional[date], version: str,
                    records, now: date, preference: Optional[ChargePreference] = None,
                    policy: Optional[str] = None) -> ChargePaymentStatus:
    """Reconcile one charge, memoized per (charge, inputs, ledger version)."""
    key = _status_cache_key(charge_row, anchor, version, now, preference, policy)
    cached = cache.get(key)
    if cached is not None:
        logger.debug(f"[CACHE] Hit for {key}")
        return cached

    charge = ChargeDefinition.from_dict(charge_row)
    status = reconcile(charge, anchor, records, now, preference=preference, policy=policy)

    cache.set(key, status)
    return status


def _status_payload(status: ChargePaymentStatus) -> Dict[str, Any]:
    """Status dict with the dashboard badge added."""
    result = status.to_dict()
    result["badge"] = charge_badge(status)
    return result


# ==================== Error Handlers ====================

@bp.errorhandler(InvalidChargeDefinition)
def handle_invalid_charge(error: InvalidChargeDefinition):
    logger.error(f"[CHARGE] Invalid charge definition: {error}")
    return jsonify({
        "error": "invalid_charge_definition",
        "charge_id": error.charge_id,
        "message": str(error)
    }), 422


@bp.errorhandler(LedgerSchemaError)
def handle_ledger_schema(error: LedgerSchemaError):
    logger.warning(f"[LEDGER] Rejected ledger: {error}")
    return jsonify({"error": "invalid_ledger", "message": str(error)}), 400


@bp.errorhandler(BadRequest)
def handle_bad_request(error: BadRequest):
    return jsonify({"error": "bad_request", "message": str(error)}), 400


# ==================== Routes ====================

@bp.route('/health')
def health():
    return jsonify({"status": "ok"})


@bp.route('/charges/status', methods=['POST'])
def charge_status():
    """
    Status of one charge for one tenant.

    Body:
        charge: {id, name, amount, frequency}
        tenancy_start_date: ISO date or null
        payments: raw ledger rows for the tenant
        now: optional ISO date (defaults to today)
        preferred_frequency: optional tenant choice
        locked_at: optional ISO timestamp the choice was locked at
        policy: optional cadence policy name
    """
    body = _json_body()
    charge_row = body.get("charge")
    if not isinstance(charge_row, dict):
        raise BadRequest("'charge' must be an object")

    payment_rows = body.get("payments") or []
    records = records_from_dicts(payment_rows)
    anchor = _parse_date(body.get("tenancy_start_date"), "tenancy_start_date")

    status = evaluate_charge(
        charge_row,
        anchor,
        ledger_version(payment_rows),
        records,
        _parse_now(body),
        preference=_parse_preference(body.get("preferred_frequency"), body.get("locked_at")),
        policy=_parse_policy(body.get("policy"))
    )
    return jsonify(_status_payload(status))


@bp.route('/tenants/<tenant_id>/statuses', methods=['POST'])
def tenant_statuses(tenant_id: str):
    """
    Statuses of every building charge for one tenant, with KPIs and findings.

    Body:
        charges: list of charge objects
        tenancy_start_date: ISO date or null
        payments: raw ledger rows for the tenant
        preferences: optional {charge_id: frequency or {frequency, locked_at}}
        now: optional ISO date
        policy: optional cadence policy name
    """
    body = _json_body()
    charge_rows = body.get("charges") or []
    if not isinstance(charge_rows, list):
        raise BadRequest("'charges' must be a list")
    for index, charge_row in enumerate(charge_rows):
        if not isinstance(charge_row, dict):
            raise BadRequest(f"'charges[{index}]' must be an object")

    preferences = body.get("preferences") or {}
    if not isinstance(preferences, dict):
        raise BadRequest("'preferences' must be an object")

    payment_rows = body.get("payments") or []
    records = records_from_dicts(payment_rows)
    version = ledger_version(payment_rows)
    anchor = _parse_date(body.get("tenancy_start_date"), "tenancy_start_date")
    now = _parse_now(body)
    policy = _parse_policy(body.get("policy"))

    reconciled = []
    for charge_row in charge_rows:
        charge_id = str(charge_row.get("id", charge_row.get("charge_id")))
        preference = _parse_preference(preferences.get(charge_id), name=f"preferences.{charge_id}")
        reconciled.append(evaluate_charge(charge_row, anchor, version, records, now,
                                          preference=preference, policy=policy))

    statuses = {status.charge_id: _status_payload(status) for status in reconciled}
    findings = generate_findings(reconciled, tenant_id=tenant_id)

    return jsonify({
        "tenant_id": tenant_id,
        "statuses": statuses,
        "kpis": calculate_kpis(reconciled),
        "findings": json.loads(findings.to_json(orient='records'))
    })


@bp.route('/ledger/preview', methods=['POST'])
def ledger_preview():
    """Upload a ledger export and show how each payment is classified."""
    if 'file' not in request.files:
        raise BadRequest("No file uploaded")

    file = request.files['file']
    filename = secure_filename(file.filename or "")
    suffix = Path(filename).suffix.lower()
    if not filename or suffix not in config.allowed_upload_extensions:
        raise BadRequest(f"Please upload one of: {', '.join(config.allowed_upload_extensions)}")

    with tempfile.TemporaryDirectory() as temp_dir:
        file_path = Path(temp_dir) / filename
        file.save(str(file_path))
        raw = load_ledger(file_path, config.ledger_source)

    records = normalize_payment_ledger(raw)
    rows = explain_classifications(records)

    logger.info(f"[LEDGER] Previewed {len(rows)} records from '{filename}'")
    return jsonify({"file": filename, "records": len(rows), "payments": rows})
