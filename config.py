import os


class Config:
    """애플리케이션 설정"""

    # 보안
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'scheduler-dashboard-secret-key'

    # 파일 업로드 (수강 과목 엑셀 가져오기)
    UPLOAD_FOLDER = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'uploads')
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB
    ALLOWED_EXTENSIONS = {'xlsx', 'xls'}

    # 로컬 JSON 저장 (Cosmos DB fallback)
    DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data')
    SCHEDULER_FILE = os.path.join(DATA_DIR, 'scheduler.json')

    # Azure Cosmos DB
    COSMOS_DB_ENDPOINT = os.environ.get('COSMOS_DB_ENDPOINT')
    COSMOS_DB_KEY = os.environ.get('COSMOS_DB_KEY')
    COSMOS_DATABASE_NAME = 'SchedulerDB'
    COSMOS_CONTAINER_NAME = 'SchedulerData'
    COSMOS_TIMEOUT = int(os.environ.get('COSMOS_TIMEOUT', 10))  # 초

    # 주간 캘린더 표시 범위 (시)
    CALENDAR_START_HOUR = 8
    CALENDAR_END_HOUR = 20
    WEEKDAY_LABELS = ['MON', 'TUE', 'WED', 'THU', 'FRI']

    # 로그
    LOG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'logs')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # 서버
    HOST = '0.0.0.0'
    PORT = int(os.environ.get('PORT', 5000))
    DEBUG = os.environ.get('FLASK_ENV') == 'development'

    @classmethod
    def use_cosmos_db(cls):
        """Cosmos DB 사용 여부 판단"""
        return bool(cls.COSMOS_DB_ENDPOINT and cls.COSMOS_DB_KEY)
