#!/usr/bin/env python
"""
HTTP entry point for SAS token issuance.

GET /api/SasTokenFunction provisions the container, refreshes the stored
access policy and returns a token that references it:

    {"ResponseMessage": "policy last modified: ...", "SasToken": "?sv=...&si=...&sig=..."}
"""
import os
import traceback

from azure.core.exceptions import AzureError
from flask import Flask, jsonify

from issuer_logging import setup_issuer_logging
from sas_issuer import SasTokenIssuer
from services.errors import ConfigurationError, ValidationError

logger = setup_issuer_logging()

app = Flask(__name__)


def _error_response(e, status_code):
    return jsonify({"error": type(e).__name__, "detail": str(e)}), status_code


@app.route("/api/SasTokenFunction", methods=["GET"])
def sas_token_function():
    logger.info("SAS token requested")
    try:
        # Configuration is read once per invocation
        issuer = SasTokenIssuer.from_environment()
        result = issuer.issue()
    except ValidationError as e:
        logger.warning(f"Rejected SAS request: {e}")
        return _error_response(e, 400)
    except ConfigurationError as e:
        logger.error(f"SAS issuer misconfigured: {e}")
        return _error_response(e, 500)
    except AzureError as e:
        logger.error(f"Storage request failed: {e}")
        logger.error(f"Traceback: {traceback.format_exc()}")
        return _error_response(e, 502)

    logger.info(f"SAS token issued for container '{result.container_name}'")
    return jsonify({
        "ResponseMessage": result.response_message(),
        "SasToken": result.token.query_string,
    })


@app.route("/api/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "7071")))
