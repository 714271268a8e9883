"""
Scan Record Service
Stores uploaded scan images and the scan records describing them
"""

import uuid
import time
import logging
from datetime import datetime, timedelta, timezone
from typing import List, NamedTuple, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictStr
from werkzeug.utils import secure_filename

from .diseases import Disease, PENDING_ANALYSIS
from .errors import InputError, NotFoundError, StorageError, ValidationError
from .preprocessing import sniff_content_type
from .storage import (
    BlobStore, FileSystemBlobStore, ScanDatabase, SQLiteScanDatabase, StoredBlob
)

logger = logging.getLogger(__name__)

KEY_PREFIX = 'scans/'
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'bmp', 'webp'}

RECORD_COLUMNS = (
    'id', 'image_key', 'disease_detected', 'confidence_score', 'recommendations',
    'scan_location', 'user_notes', 'created_at', 'updated_at',
)


class ScanRecord(BaseModel):
    id: int
    image_key: str
    disease_detected: Optional[str] = None
    confidence_score: Optional[float] = None
    recommendations: Optional[str] = None
    scan_location: Optional[str] = None
    user_notes: Optional[str] = None
    created_at: str
    updated_at: str

    @property
    def is_pending(self) -> bool:
        return self.disease_detected == PENDING_ANALYSIS


class ScanUpdate(BaseModel):
    """Fields a client may change on an existing scan record"""

    model_config = ConfigDict(extra='ignore')

    disease_detected: Optional[Disease] = None
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0, strict=True)
    recommendations: Optional[StrictStr] = None
    scan_location: Optional[StrictStr] = None
    user_notes: Optional[StrictStr] = None


class UploadResult(NamedTuple):
    scan_id: int
    image_key: str


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed"""
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def storage_filename(filename: str) -> str:
    """ASCII-safe name for the image key; keeps the extension even when the stem is stripped"""
    extension = filename.rsplit('.', 1)[1].lower()
    safe_name = secure_filename(filename)
    stem = safe_name.rsplit('.', 1)[0] if allowed_file(safe_name) else ''
    return f"{stem or 'upload'}.{extension}"


def parse_scan_update(payload) -> ScanUpdate:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return ScanUpdate.model_validate(payload)
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid scan update: {problems}") from e


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.isoformat(timespec='microseconds')


class ScanRecordService:
    """Stateless operations over the blob store and the scan_results table"""

    def __init__(self, blob_store: BlobStore, database: ScanDatabase,
                 list_limit: int = 50, max_list_limit: int = 200):
        self.blob_store = blob_store
        self.database = database
        self.list_limit = list_limit
        self.max_list_limit = max_list_limit

    @classmethod
    def from_config(cls, config) -> 'ScanRecordService':
        database = SQLiteScanDatabase(config.DATABASE)
        database.init_schema()
        return cls(
            blob_store=FileSystemBlobStore(config.BLOB_ROOT),
            database=database,
            list_limit=config.SCAN_LIST_LIMIT,
            max_list_limit=config.SCAN_LIST_MAX,
        )

    def generate_image_key(self, filename: str) -> str:
        """scans/<epoch millis>-<random>-<filename>, unique within one millisecond"""
        timestamp = int(time.time() * 1000)
        return f"{KEY_PREFIX}{timestamp}-{uuid.uuid4().hex[:8]}-{filename}"

    def upload_image(self, data: bytes, filename: str,
                     content_type: Optional[str] = None) -> UploadResult:
        """
        Store an image and create its pending scan record

        Args:
            data: Raw image bytes
            filename: Original client filename
            content_type: MIME type sent by the client, sniffed when missing

        Returns:
            UploadResult with the new scan id and image key
        """
        if not filename or not data:
            raise InputError("No image file provided")

        if not allowed_file(filename):
            raise InputError("Invalid file type. Please upload an image file.")
        safe_name = storage_filename(filename)

        if not content_type or content_type == 'application/octet-stream':
            content_type = sniff_content_type(data)

        key = self.generate_image_key(safe_name)
        self.blob_store.put(key, data, content_type)

        now = utc_timestamp()
        try:
            result = self.database.execute(
                "INSERT INTO scan_results (image_key, disease_detected, confidence_score, "
                "recommendations, scan_location, user_notes, created_at, updated_at) "
                "VALUES (?, ?, NULL, NULL, NULL, NULL, ?, ?)",
                (key, PENDING_ANALYSIS, now, now),
            )
        except StorageError:
            self._discard_blob(key)
            raise

        logger.info(f"Created scan {result.lastrowid} for image {key}")
        return UploadResult(result.lastrowid, key)

    def _discard_blob(self, key: str):
        try:
            self.blob_store.delete(key)
        except StorageError as e:
            logger.error(f"Could not remove orphaned blob {key}: {e}")

    def get_record(self, scan_id: int) -> ScanRecord:
        rows = self.database.query(
            f"SELECT {', '.join(RECORD_COLUMNS)} FROM scan_results WHERE id = ?", (scan_id,)
        )
        if not rows:
            raise NotFoundError("Scan not found")
        return ScanRecord(**rows[0])

    def list_records(self, limit: Optional[int] = None) -> List[ScanRecord]:
        """Most recent scans first; an empty list is a normal result"""
        limit = self.list_limit if limit is None else limit
        limit = max(1, min(int(limit), self.max_list_limit))
        rows = self.database.query(
            f"SELECT {', '.join(RECORD_COLUMNS)} FROM scan_results "
            "ORDER BY created_at DESC, id DESC LIMIT ?",
            (limit,),
        )
        return [ScanRecord(**row) for row in rows]

    def update_record(self, scan_id: int, fields) -> ScanRecord:
        """
        Apply a partial update and refresh updated_at

        Only keys present in fields are written. Concurrent updates to the
        same record are last-write-wins.
        """
        update = parse_scan_update(fields)
        current = self.get_record(scan_id)

        values = update.model_dump(exclude_unset=True, mode='json')
        updated_at = self._next_timestamp(current.updated_at)

        assignments = [f"{column} = ?" for column in values] + ["updated_at = ?"]
        params = list(values.values()) + [updated_at, scan_id]
        result = self.database.execute(
            f"UPDATE scan_results SET {', '.join(assignments)} WHERE id = ?", params
        )
        if result.rowcount == 0:
            raise NotFoundError("Scan not found")

        logger.info(f"Updated scan {scan_id}: {sorted(values)}")
        return self.get_record(scan_id)

    @staticmethod
    def _next_timestamp(previous: str) -> str:
        """Current time, nudged past previous so updated_at strictly increases"""
        now = datetime.now(timezone.utc)
        try:
            earlier = datetime.fromisoformat(previous)
        except (TypeError, ValueError):
            return utc_timestamp(now)
        if earlier.tzinfo is None:
            earlier = earlier.replace(tzinfo=timezone.utc)
        if now <= earlier:
            now = earlier + timedelta(microseconds=1)
        return utc_timestamp(now)

    def get_image(self, key: str) -> StoredBlob:
        if not key.startswith(KEY_PREFIX):
            key = KEY_PREFIX + key
        blob = self.blob_store.get(key)
        if blob is None:
            raise NotFoundError("Image not found")
        return blob
