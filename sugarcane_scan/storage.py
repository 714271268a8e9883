"""
Storage backends for scan images and scan records
Blob store: put/get bytes by key. Database: run a query, return rows.
"""

import os
import json
import sqlite3
import hashlib
import logging
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence

from werkzeug.security import safe_join

from .errors import StorageError
from .preprocessing import sniff_content_type

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / 'schema.sql'
META_SUFFIX = '.meta.json'


class StoredBlob(NamedTuple):
    data: bytes
    content_type: str
    etag: str


class ExecuteResult(NamedTuple):
    lastrowid: Optional[int]
    rowcount: int


def _remove_files(paths):
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")


class BlobStore:
    """Key-value store for image bytes"""

    def put(self, key: str, data: bytes, content_type: str) -> StoredBlob:
        raise NotImplementedError

    def get(self, key: str) -> Optional[StoredBlob]:
        raise NotImplementedError

    def delete(self, key: str):
        raise NotImplementedError


class FileSystemBlobStore(BlobStore):
    """Stores each blob as a file under root, with a JSON metadata sidecar"""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _path(self, key: str) -> Optional[str]:
        if not key or key.endswith(META_SUFFIX):
            return None
        return safe_join(self.root, *key.split('/'))

    def put(self, key: str, data: bytes, content_type: str) -> StoredBlob:
        path = self._path(key)
        if path is None:
            raise StorageError(f"Invalid blob key: {key!r}")

        etag = hashlib.md5(data).hexdigest()
        metadata = {'content_type': content_type, 'etag': etag, 'size': len(data)}
        tmp_path = f"{path}.tmp"
        replaced = False
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp_path, 'wb') as f:
                f.write(data)
            os.replace(tmp_path, path)
            replaced = True
            with open(path + META_SUFFIX, 'w') as f:
                json.dump(metadata, f)
        except OSError as e:
            leftovers = [tmp_path]
            if replaced:
                leftovers += [path, path + META_SUFFIX]
            _remove_files(leftovers)
            raise StorageError(f"Failed to write blob {key}: {e}") from e

        logger.debug(f"Stored blob {key} ({len(data)} bytes)")
        return StoredBlob(data, content_type, etag)

    def get(self, key: str) -> Optional[StoredBlob]:
        path = self._path(key)
        if path is None or not os.path.isfile(path):
            return None

        try:
            with open(path, 'rb') as f:
                data = f.read()
            metadata = {}
            if os.path.exists(path + META_SUFFIX):
                with open(path + META_SUFFIX) as f:
                    metadata = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read blob {key}: {e}") from e

        return StoredBlob(
            data=data,
            content_type=metadata.get('content_type') or sniff_content_type(data),
            etag=metadata.get('etag') or hashlib.md5(data).hexdigest(),
        )

    def delete(self, key: str):
        path = self._path(key)
        if path is None:
            return
        try:
            for target in (path, path + META_SUFFIX):
                if os.path.exists(target):
                    os.remove(target)
        except OSError as e:
            raise StorageError(f"Failed to delete blob {key}: {e}") from e


class ScanDatabase:
    """Relational table access: run a statement, return rows"""

    def init_schema(self):
        raise NotImplementedError

    def query(self, sql: str, params: Sequence = ()) -> List[dict]:
        raise NotImplementedError

    def execute(self, sql: str, params: Sequence = ()) -> ExecuteResult:
        raise NotImplementedError


class SQLiteScanDatabase(ScanDatabase):
    """sqlite3 backend opening one connection per call"""

    def __init__(self, path: str, timeout: float = 10.0):
        self.path = path
        self.timeout = timeout

    def connect(self) -> sqlite3.Connection:
        db = sqlite3.connect(self.path, timeout=self.timeout)
        db.row_factory = sqlite3.Row
        return db

    def init_schema(self):
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            db = self.connect()
            try:
                db.executescript(SCHEMA_PATH.read_text())
                db.commit()
            finally:
                db.close()
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Failed to initialize database {self.path}: {e}") from e
        logger.info(f"Database ready at {self.path}")

    def query(self, sql: str, params: Sequence = ()) -> List[dict]:
        try:
            db = self.connect()
            try:
                rows = db.execute(sql, params).fetchall()
            finally:
                db.close()
        except sqlite3.Error as e:
            raise StorageError(f"Query failed: {e}") from e
        return [dict(row) for row in rows]

    def execute(self, sql: str, params: Sequence = ()) -> ExecuteResult:
        try:
            db = self.connect()
            try:
                with db:
                    cursor = db.execute(sql, params)
                return ExecuteResult(cursor.lastrowid, cursor.rowcount)
            finally:
                db.close()
        except sqlite3.Error as e:
            raise StorageError(f"Statement failed: {e}") from e
