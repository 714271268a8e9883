"""
HTTP client for the scan service and the client-side scan workflow
(quality advice -> leaf validation -> disease detection -> upload -> save results)
"""

import os
import logging
import mimetypes
from typing import List, NamedTuple, Optional

import requests

from .detection import DetectionResult, DiseaseDetector
from .errors import InputError, NotFoundError, StorageError
from .leaf_validator import LeafValidationEngine
from .quality import QualityReport
from .records import UploadResult
from .results import ValidationResult

logger = logging.getLogger(__name__)


class ScanClient:
    """Thin wrapper around the scan service REST API"""

    def __init__(self, base_url: str, session: Optional[requests.Session] = None,
                 timeout: float = 30.0):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StorageError(f"Could not reach scan service at {self.base_url}: {e}") from e

        if response.status_code >= 400:
            try:
                message = response.json().get('error') or response.reason
            except ValueError:
                message = response.reason
            if response.status_code == 404:
                raise NotFoundError(message)
            if response.status_code < 500:
                raise InputError(message)
            raise StorageError(message)
        return response

    def health(self) -> dict:
        return self._request('GET', '/api/health').json()

    def upload_scan(self, data: bytes, filename: str,
                    content_type: Optional[str] = None) -> UploadResult:
        content_type = content_type or mimetypes.guess_type(filename)[0] or 'image/jpeg'
        response = self._request(
            'POST', '/api/upload-scan',
            files={'image': (filename, data, content_type)},
        )
        body = response.json()
        return UploadResult(body['scanId'], body['imageKey'])

    def update_scan(self, scan_id: int, **fields) -> bool:
        response = self._request('PUT', f'/api/scans/{scan_id}', json=fields)
        return bool(response.json().get('success'))

    def list_scans(self, limit: Optional[int] = None) -> List[dict]:
        params = {'limit': limit} if limit else None
        return self._request('GET', '/api/scans', params=params).json()['scans']

    def get_scan(self, scan_id: int) -> dict:
        return self._request('GET', f'/api/scans/{scan_id}').json()['scan']

    def get_image(self, key: str) -> bytes:
        path = requests.utils.quote(key, safe='/')
        return self._request('GET', f'/api/images/{path}').content


class ScanOutcome(NamedTuple):
    quality: QualityReport
    validation: ValidationResult
    detection: Optional[DetectionResult] = None
    upload: Optional[UploadResult] = None

    @property
    def saved(self) -> bool:
        return self.upload is not None

    def to_dict(self) -> dict:
        return {
            'quality': self.quality.to_dict(),
            'validation': self.validation.to_dict(),
            'detection': self.detection.to_dict() if self.detection else None,
            'scan_id': self.upload.scan_id if self.upload else None,
            'image_key': self.upload.image_key if self.upload else None,
        }


class ScanWorkflow:
    """Runs one capture through validation, detection and persistence"""

    def __init__(self, engine: LeafValidationEngine, detector: DiseaseDetector,
                 client: ScanClient, scan_location: str = 'Mobile Device'):
        self.engine = engine
        self.detector = detector
        self.client = client
        self.scan_location = scan_location

    def run(self, image_path: str, user_notes: str = '') -> ScanOutcome:
        """
        Scan an image file

        Images rejected by the validation engine are not uploaded.
        Upload or save failures propagate so the caller can offer a retry.
        """
        with open(image_path, 'rb') as f:
            data = f.read()

        quality = self.engine.assess_quality(data)
        if not quality.acceptable:
            logger.info(f"Quality advice for {image_path}: {quality.suggestions}")

        validation = self.engine.validate(data)
        if not validation.is_leaf:
            return ScanOutcome(quality, validation)

        detection = self.detector.detect(data)
        upload = self.client.upload_scan(data, os.path.basename(image_path))
        self.client.update_scan(
            upload.scan_id,
            image_key=upload.image_key,
            disease_detected=detection.disease.value,
            confidence_score=detection.confidence,
            recommendations=detection.recommendations,
            scan_location=self.scan_location,
            user_notes=user_notes,
        )
        logger.info(f"Saved scan {upload.scan_id}: {detection.disease.value} "
                    f"({detection.confidence:.1%})")
        return ScanOutcome(quality, validation, detection, upload)
