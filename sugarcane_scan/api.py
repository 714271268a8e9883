"""
Flask Web API for Sugarcane Leaf Scans
REST endpoints for uploading scan images and reading/updating scan records
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Union

from flask import Flask, jsonify, request, make_response
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from .config import Config
from .diseases import DISEASE_INFO
from .errors import ScanError, StorageError, InputError, ValidationError
from .records import ScanRecordService

logger = logging.getLogger(__name__)

IMAGE_CACHE_SECONDS = 24 * 60 * 60


def create_app(config: Union[Config, dict, None] = None,
               service: Optional[ScanRecordService] = None) -> Flask:
    """
    Build the scan service application

    Args:
        config: Config instance or dict of Config overrides
        service: Pre-built record service; created from config when omitted
    """
    if isinstance(config, dict):
        config = Config(**config)
    config = config or Config()

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = config.MAX_CONTENT_LENGTH
    app.config['SCAN_CONFIG'] = config

    service = service or ScanRecordService.from_config(config)
    app.extensions['scan_service'] = service

    @app.route('/api/upload-scan', methods=['POST'])
    def upload_scan():
        """Store an uploaded image and create a pending scan record"""
        file = request.files.get('image')
        if file is None or file.filename == '':
            raise InputError("No image file provided")

        result = service.upload_image(file.read(), file.filename, file.mimetype)
        return jsonify({
            'success': True,
            'scanId': result.scan_id,
            'imageKey': result.image_key,
        }), 201

    @app.route('/api/scans', methods=['GET'])
    def list_scans():
        limit = request.args.get('limit', type=int)
        scans = service.list_records(limit)
        return jsonify({'scans': [scan.model_dump() for scan in scans]})

    @app.route('/api/scans/<int:scan_id>', methods=['GET'])
    def get_scan(scan_id):
        scan = service.get_record(scan_id)
        return jsonify({'scan': scan.model_dump()})

    @app.route('/api/scans/<int:scan_id>', methods=['PUT'])
    def update_scan(scan_id):
        """Attach analysis results or notes to a scan"""
        payload = request.get_json(silent=True)
        if payload is None:
            raise ValidationError("Request body must be a JSON object")
        service.update_record(scan_id, payload)
        return jsonify({'success': True})

    @app.route('/api/images/<path:key>', methods=['GET'])
    def get_image(key):
        blob = service.get_image(key)
        response = make_response(blob.data)
        response.headers['Content-Type'] = blob.content_type
        response.set_etag(blob.etag)
        response.cache_control.public = True
        response.cache_control.max_age = IMAGE_CACHE_SECONDS
        return response.make_conditional(request)

    @app.route('/api/diseases', methods=['GET'])
    def list_diseases():
        return jsonify({
            'diseases': {disease.value: info.to_dict() for disease, info in DISEASE_INFO.items()}
        })

    @app.route('/api/health')
    def health_check():
        """Health check endpoint"""
        return jsonify({
            'status': 'ok',
            'timestamp': datetime.now(timezone.utc).isoformat(),
        })

    @app.errorhandler(ScanError)
    def handle_scan_error(e):
        if isinstance(e, StorageError):
            logger.exception(f"Storage error on {request.method} {request.path}: {e.message}")
            return jsonify({'error': StorageError.public_message}), e.status_code
        if e.status_code >= 500:
            logger.exception(f"Unhandled scan error: {e.message}")
            return jsonify({'error': ScanError.public_message}), e.status_code
        return jsonify({'error': e.message}), e.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(e):
        """Handle file too large error"""
        limit_mb = config.MAX_CONTENT_LENGTH // (1024 * 1024)
        return jsonify({'error': f'File too large. Maximum size is {limit_mb}MB.'}), 413

    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify({'error': e.description}), e.code

    return app
