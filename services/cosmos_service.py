"""
데이터 저장 서비스 - Azure Cosmos DB 또는 로컬 JSON fallback

일정, 후보 시간표, 즐겨찾기, 수강 과목 조건, 고정 표시 시간표를 저장한다.
시간표 생성(검색)은 외부 생성기에 위임한다.
"""
import os
import json
import hashlib
import logging
from datetime import datetime
from config import Config
from services.schedule_identity import canonical_key

logger = logging.getLogger(__name__)

_storage_instance = None

SCHEDULE_TABLES = ('schedules', 'favorites')
GENERATOR_MISSING = "시간표 생성기가 설정되지 않았습니다."


def get_storage():
    """저장소 싱글턴 인스턴스 반환"""
    global _storage_instance
    if _storage_instance is None:
        if Config.use_cosmos_db():
            _storage_instance = CosmosStorage()
        else:
            _storage_instance = LocalJsonStorage()
    return _storage_instance


def _check_table(table):
    if table not in SCHEDULE_TABLES:
        raise ValueError(f"알 수 없는 시간표 테이블: {table}")


def _run_generator(storage, parameters):
    """외부 생성기 호출 - 오류 문자열 또는 후보 시간표 배열 반환"""
    if storage.generator is None:
        logger.warning("시간표 생성기 미설정")
        return GENERATOR_MISSING
    result = storage.generator(parameters)
    if isinstance(result, list):
        storage.save_schedules(result)
        logger.info(f"후보 시간표 {len(result)}개 생성")
    return result


class LocalJsonStorage:
    """로컬 JSON 파일 기반 저장소 (개발용 fallback)"""

    def __init__(self, filepath=None, generator=None):
        self.filepath = filepath or Config.SCHEDULER_FILE
        self.generator = generator
        os.makedirs(os.path.dirname(self.filepath), exist_ok=True)
        if not os.path.exists(self.filepath):
            self._save_data(self._empty_data())
        logger.info("로컬 JSON 저장소 초기화 완료")

    @staticmethod
    def _empty_data():
        return {
            "events": [],
            "schedules": [],
            "favorites": [],
            "classes": [],
            "display_schedule": None,
        }

    def _load_data(self):
        data = self._empty_data()
        try:
            with open(self.filepath, 'r', encoding='utf-8') as f:
                data.update(json.load(f))
        except (json.JSONDecodeError, FileNotFoundError):
            pass
        return data

    def _save_data(self, data):
        with open(self.filepath, 'w', encoding='utf-8') as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    # ===== 일정 =====

    def get_events(self):
        return self._load_data()["events"]

    def create_event(self, event):
        """일정 저장 (같은 id 가 있으면 교체), 반환값 없음"""
        data = self._load_data()
        data['events'] = [e for e in data['events'] if e.get('id') != event['id']]
        data['events'].append(event)
        self._save_data(data)
        logger.info(f"일정 저장: {event.get('title')}")

    def update_event(self, event):
        data = self._load_data()
        for i, existing in enumerate(data['events']):
            if existing.get('id') == event['id']:
                data['events'][i] = event
                self._save_data(data)
                logger.info(f"일정 수정: {event['id']}")
                return
        raise LookupError(f"일정을 찾을 수 없음: {event['id']}")

    def delete_event(self, event_id):
        data = self._load_data()
        original_len = len(data['events'])
        data['events'] = [e for e in data['events'] if e.get('id') != event_id]
        if len(data['events']) == original_len:
            raise LookupError(f"일정을 찾을 수 없음: {event_id}")
        self._save_data(data)
        logger.info(f"일정 삭제: {event_id}")

    # ===== 후보 시간표 / 즐겨찾기 =====

    def get_schedules(self, table='schedules'):
        _check_table(table)
        data = self._load_data()
        if table == 'favorites':
            return [f['data'] for f in data['favorites']]
        return data['schedules']

    def save_schedules(self, schedules):
        """새 생성 결과로 후보 시간표 전체 교체"""
        data = self._load_data()
        data['schedules'] = list(schedules)
        self._save_data(data)

    def delete_schedule(self, key, is_favorited):
        data = self._load_data()
        schedules = [s for s in data['schedules'] if canonical_key(s) != key]
        removed = len(schedules) < len(data['schedules'])
        data['schedules'] = schedules
        if is_favorited:
            favorites = [f for f in data['favorites'] if f.get('id') != key]
            removed = removed or len(favorites) < len(data['favorites'])
            data['favorites'] = favorites
        if not removed:
            raise LookupError("시간표를 찾을 수 없음")
        self._save_data(data)
        logger.info(f"시간표 삭제 (즐겨찾기 포함: {is_favorited})")

    def change_favorite(self, key, is_favorited, schedule=None):
        """현재 즐겨찾기면 해제, 아니면 시간표 값과 함께 추가"""
        data = self._load_data()
        data['favorites'] = [f for f in data['favorites'] if f.get('id') != key]
        if not is_favorited:
            if schedule is None:
                raise ValueError("즐겨찾기에 추가할 시간표 데이터가 없습니다.")
            data['favorites'].append({"id": key, "data": schedule})
        self._save_data(data)
        logger.info(f"즐겨찾기 {'해제' if is_favorited else '추가'}")

    # ===== 수강 과목 조건 =====

    def get_classes(self):
        return self._load_data()["classes"]

    def update_class(self, class_param):
        """수강 과목 조건 저장 (없으면 추가)"""
        data = self._load_data()
        for i, existing in enumerate(data['classes']):
            if existing.get('id') == class_param['id']:
                data['classes'][i] = class_param
                break
        else:
            data['classes'].append(class_param)
        self._save_data(data)
        logger.info(f"수강 과목 저장: {class_param.get('code')}{class_param.get('name')}")

    def remove_class(self, class_id):
        """수강 과목 조건 삭제 (아직 저장되지 않은 과목이면 변경 없음)"""
        data = self._load_data()
        data['classes'] = [c for c in data['classes'] if c.get('id') != class_id]
        self._save_data(data)
        logger.info(f"수강 과목 삭제: {class_id}")

    # ===== 고정 표시 시간표 / 생성 =====

    def get_display_schedule(self):
        return self._load_data()["display_schedule"]

    def set_display_schedule(self, index):
        data = self._load_data()
        data['display_schedule'] = index
        self._save_data(data)

    def generate_schedules(self, parameters):
        return _run_generator(self, parameters)


class CosmosStorage:
    """Azure Cosmos DB 기반 저장소"""

    SYSTEM_ID = 'system'
    META_FIELDS = ('_rid', '_self', '_etag', '_attachments', '_ts', 'type')

    def __init__(self, generator=None):
        from azure.cosmos import CosmosClient, PartitionKey
        self.generator = generator
        self.client = CosmosClient(
            Config.COSMOS_DB_ENDPOINT, Config.COSMOS_DB_KEY,
            connection_timeout=Config.COSMOS_TIMEOUT,
        )
        self.database = self.client.create_database_if_not_exists(id=Config.COSMOS_DATABASE_NAME)
        self.container = self.database.create_container_if_not_exists(
            id=Config.COSMOS_CONTAINER_NAME,
            partition_key=PartitionKey(path="/type")
        )
        logger.info("Azure Cosmos DB 저장소 초기화 완료")

    @staticmethod
    def _doc_id(key):
        # 정규화 키는 길고 '/' 등을 포함할 수 있어 해시를 문서 id 로 사용
        return hashlib.sha256(key.encode('utf-8')).hexdigest()

    def _strip(self, doc):
        return {k: v for k, v in doc.items() if k not in self.META_FIELDS}

    def _query(self, doc_type, order_by=None):
        query = "SELECT * FROM c WHERE c.type = @type"
        if order_by:
            query += f" ORDER BY c.{order_by}"
        return list(self.container.query_items(
            query=query,
            parameters=[{"name": "@type", "value": doc_type}],
            partition_key=doc_type,
        ))

    def _delete(self, item_id, doc_type, label):
        from azure.cosmos import exceptions
        try:
            self.container.delete_item(item=item_id, partition_key=doc_type)
        except exceptions.CosmosResourceNotFoundError:
            raise LookupError(f"{label}을(를) 찾을 수 없음: {item_id}")

    # ===== 일정 =====

    def get_events(self):
        return [self._strip(doc) for doc in self._query('event')]

    def create_event(self, event):
        self.container.upsert_item(body={**event, "type": "event"})
        logger.info(f"일정 저장: {event.get('title')}")

    def update_event(self, event):
        from azure.cosmos import exceptions
        try:
            self.container.replace_item(item=event['id'], body={**event, "type": "event"})
        except exceptions.CosmosResourceNotFoundError:
            raise LookupError(f"일정을 찾을 수 없음: {event['id']}")
        logger.info(f"일정 수정: {event['id']}")

    def delete_event(self, event_id):
        self._delete(event_id, 'event', '일정')
        logger.info(f"일정 삭제: {event_id}")

    # ===== 후보 시간표 / 즐겨찾기 =====

    def get_schedules(self, table='schedules'):
        _check_table(table)
        if table == 'favorites':
            return [doc['data'] for doc in self._query('favorite', order_by='added_at')]
        return [doc['data'] for doc in self._query('schedule', order_by='order')]

    def save_schedules(self, schedules):
        for doc in self._query('schedule'):
            self.container.delete_item(item=doc['id'], partition_key='schedule')
        for order, schedule in enumerate(schedules):
            key = canonical_key(schedule)
            if key is None:
                logger.warning(f"직렬화할 수 없는 시간표 저장 건너뜀 (순번 {order})")
                continue
            self.container.upsert_item(body={
                "id": self._doc_id(key),
                "type": "schedule",
                "key": key,
                "order": order,
                "data": schedule,
            })

    def delete_schedule(self, key, is_favorited):
        from azure.cosmos import exceptions
        removed = False
        doc_types = ('schedule', 'favorite') if is_favorited else ('schedule',)
        for doc_type in doc_types:
            try:
                self.container.delete_item(item=self._doc_id(key), partition_key=doc_type)
                removed = True
            except exceptions.CosmosResourceNotFoundError:
                pass
        if not removed:
            raise LookupError("시간표를 찾을 수 없음")
        logger.info(f"시간표 삭제 (즐겨찾기 포함: {is_favorited})")

    def change_favorite(self, key, is_favorited, schedule=None):
        from azure.cosmos import exceptions
        doc_id = self._doc_id(key)
        if is_favorited:
            try:
                self.container.delete_item(item=doc_id, partition_key='favorite')
            except exceptions.CosmosResourceNotFoundError:
                pass
            logger.info("즐겨찾기 해제")
            return
        if schedule is None:
            raise ValueError("즐겨찾기에 추가할 시간표 데이터가 없습니다.")
        self.container.upsert_item(body={
            "id": doc_id,
            "type": "favorite",
            "key": key,
            "data": schedule,
            "added_at": datetime.now().isoformat(),
        })
        logger.info("즐겨찾기 추가")

    # ===== 수강 과목 조건 =====

    def get_classes(self):
        return [self._strip(doc) for doc in self._query('class')]

    def update_class(self, class_param):
        self.container.upsert_item(body={**class_param, "type": "class"})
        logger.info(f"수강 과목 저장: {class_param.get('code')}{class_param.get('name')}")

    def remove_class(self, class_id):
        from azure.cosmos import exceptions
        try:
            self.container.delete_item(item=class_id, partition_key='class')
        except exceptions.CosmosResourceNotFoundError:
            pass
        logger.info(f"수강 과목 삭제: {class_id}")

    # ===== 고정 표시 시간표 / 생성 =====

    def get_display_schedule(self):
        from azure.cosmos import exceptions
        try:
            doc = self.container.read_item(item=self.SYSTEM_ID, partition_key='system')
        except exceptions.CosmosResourceNotFoundError:
            return None
        return doc.get('display_schedule')

    def set_display_schedule(self, index):
        self.container.upsert_item(body={
            "id": self.SYSTEM_ID,
            "type": "system",
            "display_schedule": index,
        })

    def generate_schedules(self, parameters):
        return _run_generator(self, parameters)
