# skinsano/services/analysis_store.py
"""
원격 저장소(Firestore)를 먼저 시도하고, 설정되지 않았거나 실패하면
프로세스 내부 맵으로 조용히 대체하는 분석 기록 저장소.

모든 연산은 (값, 오류) 튜플을 반환합니다. 오류는 두 경로가 모두 실패했을 때만 채워집니다.
로컬 경로에 기록된 데이터는 원격 저장소가 나중에 복구되더라도 동기화되지 않습니다.
"""
import copy
import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from skinsano.core.exceptions import PersistenceUnavailableError
from skinsano.models.analysis import AnalysisRecord


class InMemoryAnalysisRepository:
    """스레드 안전한 프로세스 내부 저장소. 저장과 조회 시 모두 복사본을 사용합니다."""

    def __init__(self):
        self._records: Dict[str, AnalysisRecord] = {}
        self._lock = threading.Lock()

    def put(self, record: AnalysisRecord) -> AnalysisRecord:
        with self._lock:
            self._records[record.analysis_id] = copy.deepcopy(record)
        return record

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        with self._lock:
            record = self._records.get(analysis_id)
            return copy.deepcopy(record) if record else None

    def list_by_owner(self, owner: str) -> List[AnalysisRecord]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.values() if r.owner == owner]

    def count(self) -> int:
        with self._lock:
            return len(self._records)


def merge_records(*sources: Iterable[AnalysisRecord]) -> List[AnalysisRecord]:
    """id 기준으로 중복을 제거하고(updated_at이 늦은 쪽 우선) 최신순으로 정렬합니다."""
    merged: Dict[str, AnalysisRecord] = {}
    for records in sources:
        for record in records:
            existing = merged.get(record.analysis_id)
            if existing is None or record.updated_at >= existing.updated_at:
                merged[record.analysis_id] = record
    return sorted(merged.values(), key=lambda r: r.created_at, reverse=True)


class AnalysisStore:
    """
    분석 기록 저장소 파사드.

    :param remote: FirestoreAnalysisRepository 등 원격 저장소. None이면 미설정 상태로 간주합니다.
    :param local: 로컬 대체 저장소. 테스트에서는 독립된 인스턴스를 주입합니다.
    """

    def __init__(self, remote=None, local: Optional[InMemoryAnalysisRepository] = None):
        self.remote = remote
        self.local = local if local is not None else InMemoryAnalysisRepository()

    @property
    def remote_configured(self) -> bool:
        return self.remote is not None

    def _write(self, operation: str, record: AnalysisRecord) -> Tuple[Optional[AnalysisRecord], Optional[Exception]]:
        if self.remote is not None:
            try:
                getattr(self.remote, operation)(record)
                return record, None
            except Exception as e:
                logging.warning(f"원격 저장소 {operation} 실패, 로컬 저장소로 대체합니다 (id: {record.analysis_id}): {e}")
        try:
            self.local.put(record)
            logging.info(f"로컬 저장소에 {operation} 완료 (id: {record.analysis_id})")
            return record, None
        except Exception as e:
            logging.error(f"로컬 저장소 {operation} 실패 (id: {record.analysis_id}): {e}", exc_info=True)
            return None, PersistenceUnavailableError(f"분석 기록을 저장할 수 없습니다: {record.analysis_id}")

    def create(self, record: AnalysisRecord) -> Tuple[Optional[AnalysisRecord], Optional[Exception]]:
        return self._write('create', record)

    def update(self, record: AnalysisRecord) -> Tuple[Optional[AnalysisRecord], Optional[Exception]]:
        return self._write('update', record)

    def get_by_id(self, analysis_id: str) -> Tuple[Optional[AnalysisRecord], Optional[Exception]]:
        """
        두 경로를 모두 확인합니다. 같은 id가 양쪽에 있으면 updated_at이 늦은 쪽을 반환하고,
        어디에도 없으면 (None, None)을 반환합니다.
        """
        remote_failed = False
        remote_record = None
        if self.remote is not None:
            try:
                remote_record = self.remote.get(analysis_id)
            except Exception as e:
                remote_failed = True
                logging.warning(f"원격 저장소 조회 실패, 로컬 저장소를 확인합니다 (id: {analysis_id}): {e}")

        try:
            local_record = self.local.get(analysis_id)
        except Exception as e:
            logging.error(f"로컬 저장소 조회 실패 (id: {analysis_id}): {e}", exc_info=True)
            if remote_failed or self.remote is None:
                return None, PersistenceUnavailableError(f"분석 기록을 조회할 수 없습니다: {analysis_id}")
            local_record = None

        candidates = [r for r in (remote_record, local_record) if r is not None]
        if not candidates:
            return None, None
        return max(candidates, key=lambda r: r.updated_at), None

    def list_by_owner(self, owner: str, limit: Optional[int] = None) -> Tuple[List[AnalysisRecord], Optional[Exception]]:
        """원격/로컬 결과를 합쳐 중복을 제거한 뒤 최신순으로 반환합니다."""
        remote_records: List[AnalysisRecord] = []
        remote_failed = False
        if self.remote is not None:
            try:
                remote_records = self.remote.list_by_owner(owner, limit)
            except Exception as e:
                remote_failed = True
                logging.warning(f"원격 저장소 목록 조회 실패, 로컬 저장소만 사용합니다 (owner: {owner}): {e}")

        try:
            local_records = self.local.list_by_owner(owner)
        except Exception as e:
            logging.error(f"로컬 저장소 목록 조회 실패 (owner: {owner}): {e}", exc_info=True)
            if remote_failed or self.remote is None:
                return [], PersistenceUnavailableError(f"분석 목록을 조회할 수 없습니다: {owner}")
            local_records = []

        merged = merge_records(remote_records, local_records)
        return (merged[:limit] if limit else merged), None

    def test_connection(self) -> Dict[str, object]:
        """원격 저장소 연결 상태와 로컬 저장소의 기록 수를 보고합니다. 로컬 경로가 있으므로 항상 사용 가능합니다."""
        report = {
            "configured": self.remote_configured,
            "remote_ok": None,
            "local_count": self.local.count(),
        }
        if self.remote is not None:
            try:
                self.remote.ping()
                report["remote_ok"] = True
            except Exception as e:
                logging.warning(f"원격 저장소 연결 확인 실패: {e}")
                report["remote_ok"] = False
                report["error"] = str(e)
        return report
