"""Conversation Service HTTP handler.

Thin Flask surface over the lifecycle manager and the reconciliation
engine: the call-ended webhook, conversation queries, refresh and
regenerate actions, bulk import/validation and cache maintenance.

Views are async (flask[async]); each request runs on its own event loop,
so provider clients open a fresh aiohttp session per call.
"""
import logging
import os

from flask import Flask, jsonify, request

from riskwatch.shared.database import ConnectionManager, DatabaseConfig, RepositoryError
from riskwatch.shared.models import LifecycleStatus, RiskLevel
from riskwatch.shared.utils import configure_pii_salt
from riskwatch.services.alerting import AlertConfig, RiskAlertPublisher
from riskwatch.services.providers import (
    AnalysisProviderClient,
    AnalysisProviderConfig,
    ProviderError,
    VoiceProviderClient,
    VoiceProviderConfig,
)
from riskwatch.services.risk_engine import EngineConfig, RiskAssessmentEngine
from .conversation_repository import ConversationRepository, InMemoryConversationStore
from .lifecycle import ConversationLifecycleManager, ConversationNotFound, NoTranscript
from .reconciliation import BatchReconciliationEngine, ReconciliationConfig

logger = logging.getLogger(__name__)

app = Flask(__name__)

pii_salt = os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
configure_pii_salt(pii_salt)

MAX_PAGE_SIZE = 200

database = None
if os.getenv("CONVERSATION_STORE", "memory") == "postgres":
    database = ConnectionManager(DatabaseConfig.from_env())
    database.initialize()
    conversation_store = ConversationRepository(database)
else:
    conversation_store = InMemoryConversationStore()

voice_client = VoiceProviderClient(VoiceProviderConfig.from_env())
analysis_client = AnalysisProviderClient(AnalysisProviderConfig.from_env())
risk_engine = RiskAssessmentEngine(voice_client, analysis_client, config=EngineConfig.from_env())
lifecycle_manager = ConversationLifecycleManager(
    conversation_store,
    risk_engine,
    alert_publisher=RiskAlertPublisher(AlertConfig.from_env()),
)
reconciliation_engine = BatchReconciliationEngine(
    conversation_store,
    risk_engine,
    voice_client,
    config=ReconciliationConfig.from_env(),
)


def _parse_call_ended(data: dict):
    """Return (reference, is_direct_id) for a call-ended event, else None.

    Voice provider webhooks carry the call id directly; telephony status
    callbacks carry a session reference that must be correlated.
    """
    if data.get("event") in ("call.ended", "completed"):
        call = data.get("call") or {}
        return call.get("callId") or data.get("callId"), True
    if data.get("CallStatus") == "completed":
        return data.get("ParentCallSid") or data.get("CallSid"), False
    return None


@app.errorhandler(RepositoryError)
def storage_unavailable(error):
    logger.error("CONVERSATION_STORE_UNAVAILABLE", extra={"error": str(error)})
    return jsonify({"error": "Conversation store unavailable"}), 503


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint."""
    return jsonify({
        "status": "healthy",
        "service": "conversation-service",
    }), 200


@app.route("/ready", methods=["GET"])
async def ready():
    """Readiness check: voice provider reachable and database connected."""
    voice_ok = await voice_client.check_connection()
    db_ok = database.health_check()["healthy"] if database is not None else True

    body = {
        "status": "ready" if voice_ok and db_ok else "not_ready",
        "voice_provider": voice_ok,
        "analysis_provider_configured": analysis_client.configured,
        "database": db_ok,
    }
    return jsonify(body), 200 if voice_ok and db_ok else 503


@app.route("/events/call-ended", methods=["POST"])
async def call_ended():
    """Webhook for finished calls.

    Request Body (either):
        {"event": "call.ended", "call": {"callId": "abc"}}
        CallSid=CA123&CallStatus=completed   (form or JSON)
    """
    data = request.get_json(silent=True) or request.form.to_dict()
    if not data:
        return jsonify({"error": "Request body required"}), 400

    parsed = _parse_call_ended(data)
    if parsed is None:
        return jsonify({"status": "ignored"}), 200

    reference, is_direct_id = parsed
    if not reference:
        return jsonify({"error": "Missing call identifier"}), 400

    try:
        record = await lifecycle_manager.call_ended(reference, is_direct_id)
    except ConversationNotFound as e:
        return jsonify({"error": str(e)}), 404
    except RepositoryError as e:
        return storage_unavailable(e)
    except Exception as e:
        logger.error("CALL_ENDED_ERROR", extra={"reference": reference, "error": str(e)})
        return jsonify({"error": "Failed to process call-ended event"}), 500

    return jsonify({"status": "processed", "conversation": record.to_dict()}), 200


@app.route("/api/conversations", methods=["GET"])
def list_conversations():
    """List conversations, newest first.

    Query Params:
        riskLevel: none|low|medium|high|severe|unknown
        status: active|completed|no_transcript|analysis_only
        limit: page size (default 50)
        offset: rows to skip (default 0)
    """
    try:
        risk_level = request.args.get("riskLevel")
        status = request.args.get("status")
        limit = min(int(request.args.get("limit", "50")), MAX_PAGE_SIZE)
        offset = int(request.args.get("offset", "0"))
        risk_filter = RiskLevel(risk_level) if risk_level else None
        status_filter = LifecycleStatus(status) if status else None
    except ValueError as e:
        return jsonify({"error": f"Invalid query parameter: {e}"}), 400
    if limit < 0 or offset < 0:
        return jsonify({"error": "limit and offset must be non-negative"}), 400

    try:
        records = conversation_store.list_all()
    except RepositoryError as e:
        return storage_unavailable(e)
    except Exception as e:
        logger.error("CONVERSATION_LIST_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to list conversations"}), 500

    if risk_filter is not None:
        records = [r for r in records if r.risk_level == risk_filter]
    if status_filter is not None:
        records = [r for r in records if r.lifecycle_status == status_filter]
    page = records[offset:offset + limit]

    return jsonify({
        "total": len(records),
        "count": len(page),
        "offset": offset,
        "conversations": [r.to_dict() for r in page],
    }), 200


@app.route("/api/conversations/<conversation_id>", methods=["GET"])
def get_conversation(conversation_id: str):
    record = conversation_store.find_by_id(conversation_id)
    if record is None:
        return jsonify({"error": "Conversation not found"}), 404
    return jsonify(record.to_dict()), 200


@app.route("/api/conversations/<conversation_id>/refresh", methods=["POST"])
async def refresh_conversation(conversation_id: str):
    try:
        outcome = await lifecycle_manager.refresh(conversation_id)
    except ConversationNotFound as e:
        return jsonify({"error": str(e)}), 404
    except RepositoryError as e:
        return storage_unavailable(e)
    except Exception as e:
        logger.error(
            "CONVERSATION_REFRESH_ERROR",
            extra={"conversation_id": conversation_id, "error": str(e)}
        )
        return jsonify({"error": f"Failed to refresh conversation: {e}"}), 500

    return jsonify({
        "conversation": outcome.record.to_dict(),
        "transcript_changed": outcome.transcript_changed,
        "source": outcome.source,
    }), 200


@app.route("/api/conversations/<conversation_id>/regenerate-analysis", methods=["POST"])
async def regenerate_analysis(conversation_id: str):
    try:
        outcome = await lifecycle_manager.regenerate(conversation_id)
    except ConversationNotFound as e:
        return jsonify({"error": str(e)}), 404
    except NoTranscript as e:
        return jsonify({"error": str(e)}), 422
    except RepositoryError as e:
        return storage_unavailable(e)
    except Exception as e:
        logger.error(
            "CONVERSATION_REGENERATE_ERROR",
            extra={"conversation_id": conversation_id, "error": str(e)}
        )
        return jsonify({"error": f"Failed to regenerate analysis: {e}"}), 500

    return jsonify({
        "conversation": outcome.record.to_dict(),
        "transcript_changed": outcome.transcript_changed,
        "source": outcome.source,
    }), 200


@app.route("/api/conversations/refresh-all", methods=["POST"])
async def refresh_all():
    try:
        report = await lifecycle_manager.batch_refresh()
    except RepositoryError as e:
        return storage_unavailable(e)
    except Exception as e:
        logger.error("CONVERSATION_REFRESH_ALL_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to refresh conversations"}), 500
    return jsonify(report.to_dict()), 200


@app.route("/api/conversations/import", methods=["POST"])
async def import_conversations():
    """Import recent provider calls.

    Request Body (optional):
        {"limit": 20}
    """
    data = request.get_json(silent=True) or {}
    try:
        limit = int(data.get("limit") or request.args.get("limit") or reconciliation_engine.config.default_import_limit)
    except (TypeError, ValueError):
        return jsonify({"error": "limit must be an integer"}), 400
    if limit < 1:
        return jsonify({"error": "limit must be positive"}), 400

    try:
        report = await reconciliation_engine.import_from_provider(limit)
    except ProviderError as e:
        logger.error("CONVERSATION_IMPORT_PROVIDER_ERROR", extra={"error": str(e)})
        return jsonify({"error": f"Voice provider unavailable: {e}"}), 502
    except RepositoryError as e:
        return storage_unavailable(e)
    except Exception as e:
        logger.error("CONVERSATION_IMPORT_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to import conversations"}), 500
    return jsonify(report.to_dict()), 200


@app.route("/api/conversations/validate", methods=["POST"])
async def validate_conversations():
    try:
        report = await reconciliation_engine.validate_against_provider()
    except RepositoryError as e:
        return storage_unavailable(e)
    except Exception as e:
        logger.error("CONVERSATION_VALIDATE_ERROR", extra={"error": str(e)})
        return jsonify({"error": "Failed to validate conversations"}), 500
    return jsonify(report.to_dict()), 200


@app.route("/api/analysis/stats", methods=["GET"])
def analysis_stats():
    stats = risk_engine.stats()
    stats["conversations"] = conversation_store.count()
    return jsonify(stats), 200


@app.route("/api/analysis/cache", methods=["DELETE"])
def clear_analysis_cache():
    cleared = risk_engine.clear_cache()
    logger.info("ANALYSIS_CACHE_CLEARED", extra={"entries": cleared})
    return jsonify({"cleared": cleared}), 200


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    port = int(os.getenv("PORT", "8010"))
    app.run(host="0.0.0.0", port=port, debug=False)
