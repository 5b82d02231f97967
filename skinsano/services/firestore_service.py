# skinsano/services/firestore_service.py
import logging
from typing import List, Optional
from firebase_admin import firestore

from skinsano.models.analysis import AnalysisRecord
from skinsano.utils.datetime_utils import DateTimeUtils

# 완료 처리 시 갱신되는 필드. 생성 이후 변경되지 않는 필드는 포함하지 않습니다.
MUTABLE_FIELDS = (
    'status', 'condition', 'confidence', 'severity', 'description',
    'recommendations', 'risk_factors', 'visual_findings', 'treatment_plan',
    'source', 'error_message', 'updated_at',
)


class FirestoreAnalysisRepository:
    """
    Firestore 'skin_analyses' 컬렉션에 대한 CRUD를 담당하는 원격 저장소.
    문서 ID는 analysis_id와 같고, owner 필드로 사용자별 조회를 수행합니다.
    예외는 그대로 전파되며, 대체 경로 선택은 AnalysisStore가 담당합니다.
    """

    def __init__(self, db=None, collection_name: str = 'skin_analyses'):
        self.db = db or firestore.client()
        self.analyses_ref = self.db.collection(collection_name)
        logging.info(f"FirestoreAnalysisRepository initialized (collection: {collection_name})")

    def create(self, record: AnalysisRecord) -> AnalysisRecord:
        data = DateTimeUtils.for_firestore(record.to_dict())
        self.analyses_ref.document(record.analysis_id).set(data)
        logging.info(f"Firestore 저장 성공 (Doc ID: {record.analysis_id})")
        return record

    def update(self, record: AnalysisRecord) -> AnalysisRecord:
        """존재하는 문서의 변경 가능한 필드만 갱신합니다. 문서가 없으면 Firestore가 NotFound를 발생시킵니다."""
        data = record.to_dict()
        update_data = DateTimeUtils.for_firestore({key: data[key] for key in MUTABLE_FIELDS})
        self.analyses_ref.document(record.analysis_id).update(update_data)
        logging.info(f"Firestore 갱신 성공 (Doc ID: {record.analysis_id}, status: {record.status.value})")
        return record

    def get(self, analysis_id: str) -> Optional[AnalysisRecord]:
        doc = self.analyses_ref.document(analysis_id).get()
        if not doc.exists:
            return None
        return AnalysisRecord.from_dict(doc.to_dict())

    def list_by_owner(self, owner: str, limit: Optional[int] = None) -> List[AnalysisRecord]:
        query = self.analyses_ref.where('owner', '==', owner) \
                                 .order_by('created_at', direction=firestore.Query.DESCENDING)
        if limit:
            query = query.limit(limit)
        return [AnalysisRecord.from_dict(doc.to_dict()) for doc in query.stream()]

    def ping(self):
        """연결 확인용으로 문서 하나를 조회합니다."""
        list(self.analyses_ref.limit(1).stream())
