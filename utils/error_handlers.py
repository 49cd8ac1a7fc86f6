import logging
from functools import wraps
from flask import jsonify

logger = logging.getLogger(__name__)


class ValidationError(ValueError):
    """입력 필드 검증 실패 (필드별 오류 메시지 포함)"""

    def __init__(self, errors):
        self.errors = dict(errors)
        super().__init__("; ".join(f"{k}: {v}" for k, v in self.errors.items()))


def handle_errors(f):
    """API 엔드포인트 에러 핸들링 데코레이터"""
    @wraps(f)
    def decorated(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValidationError as e:
            logger.warning(f"입력 검증 실패: {e}")
            return jsonify({"success": False, "error": "입력값을 확인해주세요.", "errors": e.errors}), 400
        except LookupError as e:
            logger.warning(f"대상을 찾을 수 없음: {e}")
            return jsonify({"success": False, "error": "대상을 찾을 수 없습니다."}), 404
        except ValueError as e:
            logger.warning(f"잘못된 값: {e}")
            return jsonify({"success": False, "error": str(e)}), 400
        except Exception as e:
            logger.error(f"서버 오류: {e}", exc_info=True)
            return jsonify({"success": False, "error": "서버 내부 오류가 발생했습니다."}), 500
    return decorated
