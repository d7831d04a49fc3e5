"""
HTTP-triggered Cloud Function entry point for the invoice enrichment job.
Runs the same pipeline as main.py and returns the run report as JSON.
"""
import json
import logging
import dataclasses
from datetime import datetime, timezone
from typing import Any, Dict

import functions_framework
from flask import Request

from config import MAX_PAGE_SIZE, OUTPUT_FORMATS, Settings, load_settings
from errors import EnricherError
from main import run

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def apply_overrides(settings: Settings, request_json: Dict[str, Any]) -> Settings:
    """
    Apply per-request overrides from the JSON body.

    Supported keys: 'format' (json/csv/xlsx), 'status', 'limit' (1..100).

    Raises:
        ValueError: on an invalid override
    """
    changes = {}

    if 'format' in request_json:
        output_format = str(request_json['format']).lower()
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"format must be one of {', '.join(OUTPUT_FORMATS)}")
        changes['output_format'] = output_format

    if 'status' in request_json:
        changes['subscription_status'] = str(request_json['status'])

    if 'limit' in request_json:
        try:
            limit = int(request_json['limit'])
        except (TypeError, ValueError):
            raise ValueError("limit must be an integer")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        changes['subscription_page_size'] = limit

    return dataclasses.replace(settings, **changes)


@functions_framework.http
def enrich_handler(request: Request) -> tuple:
    """
    HTTP Cloud Function entry point for the invoice enrichment job.

    Args:
        request: Flask request object

    Returns:
        Tuple of (response_body, http_status_code)
    """
    try:
        settings = load_settings()
        request_json = request.get_json(silent=True) or {}
        if request_json:
            logger.info(f"Request overrides: {request_json}")
        settings = apply_overrides(settings, request_json)
    except ValueError as e:
        logger.warning(f"Rejected request: {e}")
        return (json.dumps({'success': False, 'error': str(e)}), 400)
    except EnricherError as e:
        logger.error(f"Configuration error: {e}")
        return (json.dumps({'success': False, 'error': str(e)}), 500)

    try:
        report = run(settings)
    except (EnricherError, OSError, ValueError) as e:
        logger.error(f"Fatal error in enrich handler: {e}", exc_info=True)
        return (json.dumps({'success': False, 'error': str(e)}), 500)

    response = {
        'success': True,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'report': report.to_dict(),
    }
    return (json.dumps(response), 200)
