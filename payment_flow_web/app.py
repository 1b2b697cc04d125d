import logging
from typing import Optional
from uuid import uuid4

from flask import Flask, jsonify, request, session

from payment_flow.config import Settings
from payment_flow.data_models import ComponentKind
from payment_flow.errors import FlowExceedsLimitError, IncompleteProposalError
from payment_flow.main import BLOCK_CHOICES, result_to_dict
from payment_flow.session import FlowSession
from payment_flow_web.proposal_store import create_store

logger = logging.getLogger(__name__)


def _ensure_user_token() -> str:
    token = session.get("user_token")
    if not token:
        token = uuid4().hex
        session["user_token"] = token
        session.modified = True
    return token


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _parse_block(raw) -> ComponentKind:
    """Accept both CLI-style block names and snapshot keys."""
    if raw in BLOCK_CHOICES:
        return BLOCK_CHOICES[raw]
    return ComponentKind(raw)


def _session_from_payload(payload: dict, settings: Settings) -> FlowSession:
    flow_session = FlowSession(debounce_seconds=settings.debounce_seconds)
    flow_session.load_snapshot(payload.get("flow") or {})
    flow_session.flush()
    return flow_session


def _flow_response(flow_session: FlowSession, status: int = 200, **extra):
    outcome = flow_session.flush()
    result = flow_session.calculate()
    body = {
        "flow": flow_session.snapshot(),
        "result": result_to_dict(result),
        "warnings": list(outcome.warnings),
    }
    body.update(extra)
    return jsonify(body), status


def create_app(settings: Optional[Settings] = None) -> Flask:
    settings = settings or Settings.from_env()
    app = Flask(__name__)
    app.secret_key = settings.secret_key
    proposal_store = create_store(settings.database_url, max_per_user=settings.max_proposals_per_user)
    app.config["PROPOSAL_STORE"] = proposal_store

    @app.post("/flow/calculate")
    def calculate_flow():
        payload = _json_payload()
        return _flow_response(_session_from_payload(payload, settings))

    @app.post("/flow/auto")
    def request_auto():
        payload = _json_payload()
        try:
            kind = _parse_block(payload.get("block"))
        except (TypeError, ValueError):
            return jsonify({"error": f"Unknown block: {payload.get('block')}"}), 400
        enabled = payload.get("enabled", True)
        if enabled and not kind.can_auto_calculate:
            return jsonify({"error": f"{kind.label} cannot take the remaining balance"}), 400
        flow_session = _session_from_payload(payload, settings)
        if enabled:
            outcome = flow_session.request_auto_calculate(kind)
        else:
            outcome = flow_session.release(kind)
        if outcome.rejected:
            return jsonify({
                "error": outcome.conflict.message,
                "conflict": outcome.conflict.active.value,
                "flow": flow_session.snapshot(),
            }), 409
        return _flow_response(flow_session)

    @app.get("/proposals")
    def list_proposals():
        user_token = _ensure_user_token()
        return jsonify({"proposals": proposal_store.list_proposals(user_token)})

    @app.post("/proposals")
    def save_proposal():
        user_token = _ensure_user_token()
        payload = _json_payload()
        flow_session = _session_from_payload(payload, settings)
        proposal_id = uuid4().hex
        try:
            proposal_store.add_proposal(user_token, proposal_id, flow_session.flow)
        except FlowExceedsLimitError as exc:
            logger.info("Refused proposal for %s: %s", flow_session.flow.client_name, exc)
            return jsonify({"error": str(exc), "exceededAmount": float(exc.exceeded_amount)}), 409
        except IncompleteProposalError as exc:
            logger.info("Refused incomplete proposal: %s", exc)
            return jsonify({"error": str(exc), "problems": exc.problems}), 422
        return _flow_response(flow_session, status=201, id=proposal_id)

    @app.get("/proposals/<proposal_id>")
    def get_proposal(proposal_id: str):
        user_token = _ensure_user_token()
        flow = proposal_store.get_proposal(user_token, proposal_id)
        if flow is None:
            return jsonify({"error": "Proposal not found"}), 404
        return _flow_response(FlowSession(flow, debounce_seconds=settings.debounce_seconds), id=proposal_id)

    @app.post("/proposals/<proposal_id>/delete")
    def remove_proposal(proposal_id: str):
        user_token = session.get("user_token")
        proposal_store.remove_proposal(user_token, proposal_id)
        return jsonify({"removed": proposal_id})

    @app.post("/proposals/clear")
    def clear_proposals():
        user_token = session.get("user_token")
        proposal_store.clear_proposals(user_token)
        return jsonify({"cleared": True})

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print("Starting payment flow web app...")
    create_app().run(host="0.0.0.0", port=8710, debug=True)
