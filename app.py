"""
Scheduler Dashboard - 주간 시간표 플래너 (일정, 후보 시간표, 수강 과목 조건)
"""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

from flask import Flask
from config import Config
from routes import api_bp
from services.cosmos_service import get_storage
from services.scheduler_service import SchedulerService

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def _configure_logging():
    """루트 로거 설정 (콘솔 + 파일), 중복 설정 방지"""
    root = logging.getLogger()
    root.setLevel(Config.LOG_LEVEL.upper())
    if any(getattr(h, '_scheduler_handler', False) for h in root.handlers):
        return

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    file_handler = logging.FileHandler(os.path.join(Config.LOG_DIR, 'scheduler.log'), encoding='utf-8')
    for handler in (console, file_handler):
        handler.setFormatter(formatter)
        handler._scheduler_handler = True
        root.addHandler(handler)


def create_app(storage=None):
    """Flask 애플리케이션 팩토리"""
    app = Flask(__name__)
    app.config.from_object(Config)

    # 필수 디렉토리 생성
    os.makedirs(Config.UPLOAD_FOLDER, exist_ok=True)
    os.makedirs(Config.DATA_DIR, exist_ok=True)
    os.makedirs(Config.LOG_DIR, exist_ok=True)

    _configure_logging()

    # 세션 상태 (요청마다 lock 을 잡고 사용)
    app.extensions['scheduler'] = SchedulerService(storage or get_storage())

    app.register_blueprint(api_bp)

    # 보안 헤더
    @app.after_request
    def set_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Content-Security-Policy'] = "default-src 'self'; connect-src 'self'"
        return response

    return app


# Azure WebApp 호환을 위한 전역 인스턴스
app = create_app()


def main():
    """메인 실행 함수"""
    print("=" * 50)
    print("  Scheduler Dashboard")
    print("=" * 50)
    print(f"  http://localhost:{Config.PORT}/api/calendar")
    storage = "Azure Cosmos DB" if Config.use_cosmos_db() else "로컬 JSON 파일"
    print(f"  저장소: {storage}")
    print("=" * 50)

    if Config.DEBUG:
        app.run(debug=True, host=Config.HOST, port=Config.PORT)
    else:
        try:
            from waitress import serve
            print(f"Waitress 서버 시작 (포트: {Config.PORT})")
            serve(app, host=Config.HOST, port=Config.PORT)
        except Exception as e:
            print(f"서버 시작 오류: {e}")


if __name__ == '__main__':
    main()
