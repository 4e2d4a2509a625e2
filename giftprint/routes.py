"""
Flask routes for giftprint
Exposes layout listing, upload validation, preview and commit
"""

from flask import Blueprint, current_app, jsonify, request
from loguru import logger

from .errors import (
    ArtworkGenerationError, GiftPrintError, ImageRejectedError, LayoutNotFoundError
)
from .workflow import Upload


bp = Blueprint('main', __name__)

WORKFLOW_KEY = 'giftprint.workflow'


def get_workflow():
    return current_app.extensions[WORKFLOW_KEY]


def collect_uploads():
    """Turn multipart files keyed by slot id into uploads"""
    uploads = []
    for slot_id, file in request.files.items(multi=True):
        if not file or file.filename == '':
            continue
        uploads.append(Upload(slot_id=slot_id, filename=file.filename, data=file.read()))
    return uploads


def error_response(error: GiftPrintError, status: int):
    return jsonify({'success': False, 'error': error.to_dict()}), status


@bp.route('/layouts', methods=['GET'])
def list_layouts():
    """List catalog layouts with their print slots"""
    layouts = get_workflow().layouts
    return jsonify({
        'layouts': [layout.to_dict() for layout in layouts.values()]
    })


@bp.route('/uploads/validate', methods=['POST'])
def validate_upload():
    """Run the image validator on a single uploaded file"""
    file = request.files.get('image')
    if file is None or file.filename == '':
        return jsonify({'success': False, 'error': {'message': "No image file uploaded"}}), 400

    min_width = request.form.get('min_width', type=int)
    min_height = request.form.get('min_height', type=int)

    validator = get_workflow().validator
    result = validator.validate_upload(file.filename, file.read(), min_width=min_width, min_height=min_height)
    return jsonify(result.to_dict())


@bp.route('/preview/compose', methods=['POST'])
def compose_preview():
    """Render a preview and return it as a data URL"""
    layout_id = request.form.get('layout_id', '').strip()
    if not layout_id:
        return jsonify({'success': False, 'error': {'message': "layout_id is required"}}), 400

    max_width = request.form.get('width', type=int)
    if max_width is not None and max_width <= 0:
        return jsonify({'success': False, 'error': {'message': "width must be a positive integer"}}), 400

    try:
        result = get_workflow().preview(layout_id, collect_uploads(), max_width)
    except LayoutNotFoundError as e:
        logger.warning(f"Preview requested for unknown layout: {layout_id}")
        return error_response(e, 404)
    except ImageRejectedError as e:
        logger.warning(f"Preview upload rejected: {e}")
        return error_response(e, 400)
    except ArtworkGenerationError as e:
        return error_response(e, 500)

    return jsonify({
        'success': True,
        'previewUrl': result.to_data_url(),
        'width': result.width,
        'height': result.height,
        'skippedSlots': result.skipped_slots
    })


@bp.route('/orders/<order_id>/items/<item_id>/personalize/commit', methods=['POST'])
def commit_personalization(order_id, item_id):
    """Compose the final artwork for an order item"""
    layout_id = request.form.get('layout_id', '').strip()
    if not layout_id:
        return jsonify({'success': False, 'error': {'message': "layout_id is required"}}), 400

    try:
        record = get_workflow().commit(order_id, item_id, layout_id, collect_uploads())
    except LayoutNotFoundError as e:
        return error_response(e, 404)
    except ImageRejectedError as e:
        logger.warning(f"Commit upload rejected for order {order_id}: {e}")
        return error_response(e, 400)
    except ArtworkGenerationError as e:
        return error_response(e, 500)

    return jsonify({'success': True, 'personalization': record.to_dict()}), 201
