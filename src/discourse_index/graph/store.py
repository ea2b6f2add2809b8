from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from pathlib import Path

from ..errors import StoreError
from .models import (
    Direction,
    DocumentRecord,
    Location,
    Neighbor,
    Node,
    Relation,
    RelationsOf,
    ScannedDocument,
    ScanResult,
    StoreStats,
)
from .schema import SCHEMA

logger = logging.getLogger(__name__)

_NODE_COLS = "n.id, n.type, n.title, n.file, n.pos, n.outline_json, n.is_container, n.modified_at"
_REL_COLS = "r.source_id, r.target_id, r.rel_type, r.note"

# (column holding the queried id, column holding the neighbor id)
_ENDS: dict[str, tuple[str, str]] = {
    "out": ("source_id", "target_id"),
    "in": ("target_id", "source_id"),
}


def _row_to_node(row: tuple) -> Node:
    node_id, node_type, title, file, pos, outline_json, is_container, modified_at = row
    return Node(
        id=node_id,
        type=node_type,
        title=title,
        location=Location(file=file, pos=int(pos or 0), outline=tuple(json.loads(outline_json or "[]"))),
        is_container=bool(is_container),
        modified_at=modified_at,
    )


def _row_to_relation(row: tuple) -> Relation:
    return Relation(source_id=row[0], target_id=row[1], rel_type=row[2], note=row[3])


def _rollback(con: sqlite3.Connection) -> None:
    if con.in_transaction:
        try:
            con.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error("Rollback failed: %s", e)


@dataclass
class SQLiteGraphStore:
    """Persistent node/relation/document store on SQLite.

    One connection per operation. Writers are serialised by a process-level lock
    and every write runs in a single transaction; with WAL, readers keep seeing
    the last committed state while a write (including a full rebuild) is open.
    """

    path: str
    busy_timeout: float = 30.0
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = os.path.expanduser(self.path)
        self.init()

    def connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are managed explicitly below.
        return sqlite3.connect(self.path, timeout=self.busy_timeout, isolation_level=None)

    def init(self) -> None:
        try:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            con = self.connect()
            try:
                con.executescript(SCHEMA)
            finally:
                con.close()
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"cannot initialise store at {self.path}: {e}") from e

    @contextmanager
    def _reading(self, *, snapshot: bool = False) -> Iterator[sqlite3.Connection]:
        try:
            con = self.connect()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open {self.path}: {e}") from e
        try:
            if snapshot:
                con.execute("BEGIN")
            yield con
        except sqlite3.Error as e:
            raise StoreError(f"read failed: {e}") from e
        finally:
            _rollback(con)
            con.close()

    @contextmanager
    def _writing(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                con = self.connect()
            except sqlite3.Error as e:
                raise StoreError(f"cannot open {self.path}: {e}") from e
            try:
                con.execute("BEGIN IMMEDIATE")
                yield con
                con.execute("COMMIT")
            except sqlite3.Error as e:
                _rollback(con)
                raise StoreError(f"write failed: {e}") from e
            except BaseException:
                _rollback(con)
                raise
            finally:
                con.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, node_id: str) -> Node | None:
        with self._reading() as con:
            row = con.execute(f"SELECT {_NODE_COLS} FROM nodes n WHERE n.id=?", (node_id,)).fetchone()
        return _row_to_node(row) if row else None

    def find_by_type(self, node_type: str) -> list[Node]:
        with self._reading() as con:
            rows = con.execute(
                f"SELECT {_NODE_COLS} FROM nodes n WHERE n.type=? ORDER BY n.title, n.id",
                (node_type,),
            ).fetchall()
        return [_row_to_node(r) for r in rows]

    def find_by_title_substring(self, pattern: str) -> list[Node]:
        """Case-insensitive substring match on titles."""
        with self._reading() as con:
            rows = con.execute(
                f"SELECT {_NODE_COLS} FROM nodes n WHERE instr(lower(n.title), lower(?)) > 0 "
                "ORDER BY n.title, n.id",
                (pattern,),
            ).fetchall()
        return [_row_to_node(r) for r in rows]

    def find_outgoing(self, node_id: str, rel_type: str | None = None) -> list[Node]:
        return self.neighbors(node_id, "out", rel_type)

    def find_incoming(self, node_id: str, rel_type: str | None = None) -> list[Node]:
        return self.neighbors(node_id, "in", rel_type)

    def neighbors(
        self,
        node_id: str,
        direction: Direction,
        rel_type: str | None = None,
        neighbor_type: str | None = None,
    ) -> list[Node]:
        """Existing nodes at the far end of matching relations."""
        here, there = _ENDS[direction]
        sql = f"SELECT {_NODE_COLS} FROM relations r JOIN nodes n ON n.id = r.{there} WHERE r.{here}=?"
        params: list[str] = [node_id]
        if rel_type is not None:
            sql += " AND r.rel_type=?"
            params.append(rel_type)
        if neighbor_type is not None:
            sql += " AND n.type=?"
            params.append(neighbor_type)
        sql += " ORDER BY n.title, n.id"
        with self._reading() as con:
            rows = con.execute(sql, params).fetchall()
        return [_row_to_node(r) for r in rows]

    def count_relations(
        self,
        node_id: str,
        direction: Direction,
        rel_type: str | None = None,
        neighbor_type: str | None = None,
    ) -> int:
        """Number of matching edges.

        Without a neighbor type filter, edges to ids with no stored node count too.
        """
        here, there = _ENDS[direction]
        if neighbor_type is None:
            sql = f"SELECT COUNT(*) FROM relations r WHERE r.{here}=?"
        else:
            sql = f"SELECT COUNT(*) FROM relations r JOIN nodes n ON n.id = r.{there} WHERE r.{here}=?"
        params: list[str] = [node_id]
        if rel_type is not None:
            sql += " AND r.rel_type=?"
            params.append(rel_type)
        if neighbor_type is not None:
            sql += " AND n.type=?"
            params.append(neighbor_type)
        with self._reading() as con:
            (n,) = con.execute(sql, params).fetchone()
        return int(n)

    def relations_of(self, node_id: str) -> RelationsOf:
        out = RelationsOf()
        with self._reading(snapshot=True) as con:
            for direction, bucket in (("out", out.outgoing), ("in", out.incoming)):
                here, there = _ENDS[direction]
                rows = con.execute(
                    f"SELECT {_REL_COLS}, {_NODE_COLS} FROM relations r "
                    f"LEFT JOIN nodes n ON n.id = r.{there} WHERE r.{here}=? "
                    f"ORDER BY r.rel_type, n.title, r.{there}",
                    (node_id,),
                ).fetchall()
                for row in rows:
                    node = _row_to_node(row[4:]) if row[4] is not None else None
                    bucket.append(Neighbor(relation=_row_to_relation(row[:4]), node=node))
        return out

    def all_nodes(self) -> list[Node]:
        with self._reading() as con:
            rows = con.execute(f"SELECT {_NODE_COLS} FROM nodes n ORDER BY n.id").fetchall()
        return [_row_to_node(r) for r in rows]

    def all_relations(self) -> list[Relation]:
        with self._reading() as con:
            rows = con.execute(
                f"SELECT {_REL_COLS} FROM relations r ORDER BY r.source_id, r.target_id, r.rel_type"
            ).fetchall()
        return [_row_to_relation(r) for r in rows]

    def nodes_in_document(self, path: str) -> list[Node]:
        with self._reading() as con:
            rows = con.execute(
                f"SELECT {_NODE_COLS} FROM nodes n WHERE n.file=? ORDER BY n.pos, n.id", (path,)
            ).fetchall()
        return [_row_to_node(r) for r in rows]

    def node_files(self) -> set[str]:
        """Distinct backing documents referenced by stored nodes."""
        with self._reading() as con:
            return {r[0] for r in con.execute("SELECT DISTINCT file FROM nodes")}

    def stats(self) -> StoreStats:
        with self._reading(snapshot=True) as con:
            node_types = dict(con.execute("SELECT type, COUNT(*) FROM nodes GROUP BY type").fetchall())
            rel_types = dict(
                con.execute("SELECT rel_type, COUNT(*) FROM relations GROUP BY rel_type").fetchall()
            )
            (docs,) = con.execute("SELECT COUNT(*) FROM documents").fetchone()
        return StoreStats(
            nodes=sum(node_types.values()),
            relations=sum(rel_types.values()),
            documents=int(docs),
            node_types=node_types,
            relation_types=rel_types,
        )

    # ------------------------------------------------------------------
    # Document bookkeeping
    # ------------------------------------------------------------------

    def get_document(self, path: str) -> DocumentRecord | None:
        with self._reading() as con:
            row = con.execute(
                "SELECT path, modified_at, node_count, last_scanned_at FROM documents WHERE path=?",
                (path,),
            ).fetchone()
        return DocumentRecord(*row) if row else None

    def list_documents(self) -> list[DocumentRecord]:
        with self._reading() as con:
            rows = con.execute(
                "SELECT path, modified_at, node_count, last_scanned_at FROM documents ORDER BY path"
            ).fetchall()
        return [DocumentRecord(*r) for r in rows]

    def upsert_document(self, record: DocumentRecord) -> None:
        with self._writing() as con:
            self._put_document(con, record)

    def delete_document(self, path: str) -> None:
        with self._writing() as con:
            con.execute("DELETE FROM documents WHERE path=?", (path,))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_node(self, node: Node) -> None:
        with self._writing() as con:
            self._put_node(con, node)

    def upsert_relation(self, relation: Relation, *, file: str | None = None) -> None:
        with self._writing() as con:
            self._put_relation(con, relation, file)

    def delete_document_data(self, path: str) -> int:
        """Remove every node located in `path` and every relation touching them.

        Returns the number of nodes removed.
        """
        with self._writing() as con:
            return self._delete_document_data(con, path)

    def purge_document(self, path: str) -> int:
        """Like delete_document_data, and also forget the document record."""
        with self._writing() as con:
            removed = self._delete_document_data(con, path)
            con.execute("DELETE FROM documents WHERE path=?", (path,))
            return removed

    def replace_document(
        self, path: str, result: ScanResult, *, modified_at: float, scanned_at: float | None = None
    ) -> DocumentRecord | None:
        """Atomically swap a document's indexed data for a fresh scan result.

        Relations declared by other documents that point into this one survive
        when both endpoints still exist afterwards. Returns the new document
        record, or None when the scan yielded no nodes (record removed).
        """
        scanned_at = time.time() if scanned_at is None else scanned_at
        with self._writing() as con:
            foreign = con.execute(
                f"SELECT {_REL_COLS}, r.file FROM relations r "
                "WHERE (r.source_id IN (SELECT id FROM nodes WHERE file=?) "
                "OR r.target_id IN (SELECT id FROM nodes WHERE file=?)) "
                "AND r.file IS NOT NULL AND r.file != ?",
                (path, path, path),
            ).fetchall()
            self._delete_document_data(con, path)
            record = self._insert_document(con, ScannedDocument(path, result, modified_at), scanned_at)
            restored = 0
            for row in foreign:
                cur = con.execute(
                    "INSERT INTO relations(source_id, target_id, rel_type, note, file) "
                    "SELECT ?,?,?,?,? WHERE EXISTS (SELECT 1 FROM nodes WHERE id=?) "
                    "AND EXISTS (SELECT 1 FROM nodes WHERE id=?) "
                    "ON CONFLICT(source_id, target_id, rel_type) DO NOTHING",
                    (*row, row[0], row[1]),
                )
                restored += cur.rowcount
            if foreign:
                logger.debug("Restored %d/%d foreign relations into %s", restored, len(foreign), path)
        return record

    def rebuild_all(self, documents: Iterable[ScannedDocument], *, scanned_at: float | None = None) -> StoreStats:
        """Replace the entire store content in one transaction."""
        scanned_at = time.time() if scanned_at is None else scanned_at
        with self._writing() as con:
            con.execute("DELETE FROM relations")
            con.execute("DELETE FROM nodes")
            con.execute("DELETE FROM documents")
            for doc in documents:
                self._insert_document(con, doc, scanned_at)
        return self.stats()

    # ------------------------------------------------------------------
    # Statement helpers (caller owns the transaction)
    # ------------------------------------------------------------------

    @staticmethod
    def _put_node(con: sqlite3.Connection, node: Node) -> None:
        con.execute(
            """
            INSERT INTO nodes(id, type, title, file, pos, outline_json, is_container, modified_at)
            VALUES (?,?,?,?,?,?,?,?)
            ON CONFLICT(id) DO UPDATE SET
              type=excluded.type, title=excluded.title, file=excluded.file, pos=excluded.pos,
              outline_json=excluded.outline_json, is_container=excluded.is_container,
              modified_at=excluded.modified_at
            """,
            (
                node.id,
                node.type,
                node.title,
                node.location.file,
                node.location.pos,
                json.dumps(list(node.location.outline), ensure_ascii=False),
                int(node.is_container),
                node.modified_at,
            ),
        )

    @staticmethod
    def _put_relation(con: sqlite3.Connection, rel: Relation, file: str | None) -> None:
        con.execute(
            """
            INSERT INTO relations(source_id, target_id, rel_type, note, file)
            VALUES (?,?,?,?,?)
            ON CONFLICT(source_id, target_id, rel_type)
            DO UPDATE SET note=excluded.note, file=excluded.file
            """,
            (rel.source_id, rel.target_id, rel.rel_type, rel.note, file),
        )

    @staticmethod
    def _put_document(con: sqlite3.Connection, record: DocumentRecord) -> None:
        con.execute(
            """
            INSERT INTO documents(path, modified_at, node_count, last_scanned_at)
            VALUES (?,?,?,?)
            ON CONFLICT(path) DO UPDATE SET modified_at=excluded.modified_at,
              node_count=excluded.node_count, last_scanned_at=excluded.last_scanned_at
            """,
            (record.path, record.modified_at, record.node_count, record.last_scanned_at),
        )

    @staticmethod
    def _delete_document_data(con: sqlite3.Connection, path: str) -> int:
        con.execute(
            "DELETE FROM relations WHERE file=? "
            "OR source_id IN (SELECT id FROM nodes WHERE file=?) "
            "OR target_id IN (SELECT id FROM nodes WHERE file=?)",
            (path, path, path),
        )
        return con.execute("DELETE FROM nodes WHERE file=?", (path,)).rowcount

    def _insert_nodes(self, con: sqlite3.Connection, doc: ScannedDocument) -> int:
        ids: set[str] = set()
        for node in doc.result.nodes:
            if node.location.file != doc.path:
                node = replace(node, location=replace(node.location, file=doc.path))
            if node.modified_at is None:
                node = replace(node, modified_at=doc.modified_at)
            self._put_node(con, node)
            ids.add(node.id)
        return len(ids)

    def _insert_document(
        self, con: sqlite3.Connection, doc: ScannedDocument, scanned_at: float
    ) -> DocumentRecord | None:
        count = self._insert_nodes(con, doc)
        for rel in doc.result.relations:
            self._put_relation(con, rel, doc.path)
        if not count:
            con.execute("DELETE FROM documents WHERE path=?", (doc.path,))
            return None
        record = DocumentRecord(
            path=doc.path, modified_at=doc.modified_at, node_count=count, last_scanned_at=scanned_at
        )
        self._put_document(con, record)
        return record
