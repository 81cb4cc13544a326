from flask import Blueprint, request, jsonify
import logging
import time
import sentry_sdk
from services.chat_service import get_chat_service
from utils.errors import ChatWidgetError
from utils.helpers import (
    DataHelpers, DateTimeHelpers, LoggingHelpers, ResponseHelpers, ValidationHelpers, validate_request_data
)

chat_bp = Blueprint('chat', __name__)
logger = logging.getLogger(__name__)

def _current_model(chat_service) -> str:
    try:
        return chat_service.current_model()
    except Exception as e:
        logger.error(f"Could not determine current model: {str(e)}")
        return "Unknown"

@chat_bp.route('/chat', methods=['POST'])
def chat_endpoint():
    """
    Widget entry point. The body either carries an action
    (setStore, listModels, verifyToken, getUsageStatus) or a
    list of conversation messages to answer.
    """
    started = time.time()
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    action = data.get('action')
    sentry_sdk.set_extra("chat_action", action)

    try:
        chat_service = get_chat_service()

        if action == 'setStore' and data.get('storeUrl'):
            data['storeUrl'] = ValidationHelpers.normalize_store_url(data['storeUrl'])
            valid, error = validate_request_data(data, ['storeUrl'])
            if not valid:
                return jsonify(ResponseHelpers.error_response(error, error_code="INVALID_REQUEST")), 400

            store_info = chat_service.set_store(data['storeUrl'])
            return jsonify(ResponseHelpers.success_response(
                {
                    "storeInfo": store_info,
                    "currentModel": _current_model(chat_service)
                },
                message=f"Store connected successfully! I'm now ready to help customers with {store_info['name']}."
            ))

        if action == 'listModels':
            return jsonify({
                "success": True,
                "models": chat_service.list_models(),
                "currentModel": _current_model(chat_service)
            })

        if action == 'verifyToken':
            result = chat_service.verify_model_access()
            return jsonify({
                "success": True,
                "summary": result["summary"],
                "available": result["available"],
                "unavailable": result["unavailable"],
                "totalDailyQuota": result["total_daily_quota"],
                "currentModel": _current_model(chat_service)
            })

        if action == 'getUsageStatus':
            return jsonify({
                "success": True,
                "usageStatus": chat_service.usage_status(),
                "usage": chat_service.usage_snapshot(),
                "currentModel": _current_model(chat_service)
            })

        messages = data.get('messages')
        if isinstance(messages, list):
            valid, error = validate_request_data(data, ['messages'])
            if not valid:
                return jsonify(ResponseHelpers.error_response(error, error_code="INVALID_REQUEST")), 400

            reply = chat_service.chat(messages)
            products, text = DataHelpers.extract_product_block(reply)

            LoggingHelpers.log_api_request(
                'POST', '/api/chat', action='chat', status_code=200,
                response_time=round((time.time() - started) * 1000, 1)
            )
            return jsonify({
                "message": reply,
                "text": text,
                "products": products or [],
                "timestamp": DateTimeHelpers.get_current_timestamp(),
                "storeInfo": chat_service.store_info,
                "currentModel": _current_model(chat_service)
            })

        return jsonify(ResponseHelpers.error_response("Invalid request format", error_code="INVALID_REQUEST")), 400

    except ChatWidgetError as e:
        # Rendered by the app-level ChatWidgetError handler
        logger.warning(f"Chat request failed ({e.error_code}): {e.message}")
        raise
    except Exception as e:
        logger.exception("Chat API error")
        sentry_sdk.capture_exception(e)
        return jsonify(ResponseHelpers.error_response(
            "Failed to process request",
            error_code="INTERNAL_ERROR",
            details={"message": str(e)}
        )), 500

@chat_bp.route('/usage', methods=['GET'])
def usage_endpoint():
    """Current model quota usage"""
    try:
        chat_service = get_chat_service()
        return jsonify({
            "success": True,
            "usage": chat_service.usage_snapshot(),
            "currentModel": _current_model(chat_service),
            "timestamp": DateTimeHelpers.get_current_timestamp()
        })
    except ChatWidgetError:
        raise
    except Exception as e:
        logger.exception("Usage endpoint error")
        return jsonify(ResponseHelpers.error_response("Failed to get usage status", error_code="INTERNAL_ERROR")), 500

@chat_bp.route('/health', methods=['GET'])
def chat_health():
    """Health check for chat service"""
    return jsonify({
        "status": "healthy",
        "service": "chat",
        "timestamp": DateTimeHelpers.get_current_timestamp()
    })
