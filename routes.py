"""
Scheduler Dashboard - 라우트 정의
"""
import os
import uuid
import logging
from functools import wraps
from flask import Blueprint, current_app, jsonify, request
from werkzeug.utils import secure_filename

from config import Config
from services.mutation_controller import ABORTED, SKIPPED
from utils.error_handlers import ValidationError, handle_errors
from utils.validators import validate_class_param

logger = logging.getLogger(__name__)

api_bp = Blueprint('api', __name__, url_prefix='/api')


def with_scheduler(f):
    """세션 lock 을 잡고 (최초 요청이면 데이터 로드 후) 서비스 전달"""
    @wraps(f)
    def decorated(*args, **kwargs):
        service = current_app.extensions['scheduler']
        with service.lock:
            if not service.loaded:
                service.load_page()
            return f(service, *args, **kwargs)
    return decorated


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValueError("요청 데이터가 없습니다.")
    return data


def _confirmed():
    """삭제 확인 여부 (JSON body 또는 ?confirmed=true)"""
    data = request.get_json(silent=True) or {}
    flag = data.get('confirmed', request.args.get('confirmed'))
    if isinstance(flag, str):
        return flag.lower() in ('1', 'true', 'yes')
    return bool(flag)


def _optional_index(data, name='index'):
    index = data.get(name)
    if index is not None and (isinstance(index, bool) or not isinstance(index, int)):
        raise ValueError("시간표 번호가 올바르지 않습니다.")
    return index


def _mutation_response(result, message, **extra):
    body = result.to_dict()
    body.update(extra)
    if result.ok:
        body['message'] = message
        return jsonify(body)
    if result.status == ABORTED:
        body['message'] = "요청이 취소되었습니다."
        return jsonify(body)
    return jsonify(body), 400 if result.status == SKIPPED else 500


def _remove_upload(filepath):
    try:
        os.remove(filepath)
    except OSError:
        pass


def _events_payload(service):
    return [e.to_dict() for e in service.user_events]


def _classes_payload(service):
    return [c.to_dict() for c in service.classes]


# ===== 캘린더 =====

@api_bp.route('/calendar', methods=['GET'])
@handle_errors
@with_scheduler
def get_calendar(service):
    """요일별 배치가 끝난 일정 (사용자 일정 + 미리보기 시간표)"""
    processed = service.calendar()
    return jsonify({
        "success": True,
        "startHour": service.start_hour,
        "endHour": service.end_hour,
        "days": Config.WEEKDAY_LABELS,
        **processed.to_dict(),
    })


@api_bp.route('/status', methods=['GET'])
@handle_errors
@with_scheduler
def get_status(service):
    return jsonify({"success": True, **service.status()})


@api_bp.route('/status/clear', methods=['POST'])
@handle_errors
@with_scheduler
def clear_status(service):
    service.clear_scrape_status()
    return jsonify({"success": True, **service.status()})


# ===== 사용자 일정 =====

@api_bp.route('/events', methods=['GET'])
@handle_errors
@with_scheduler
def get_events(service):
    return jsonify({"success": True, "events": _events_payload(service)})


@api_bp.route('/events', methods=['POST'])
@handle_errors
@with_scheduler
def create_event(service):
    result = service.create_event(_json_body())
    return _mutation_response(result, "일정이 추가되었습니다.", events=_events_payload(service))


@api_bp.route('/events/<event_id>', methods=['PUT'])
@handle_errors
@with_scheduler
def update_event(service, event_id):
    data = _json_body()
    data['id'] = event_id
    result = service.update_event(data)
    return _mutation_response(result, "일정이 수정되었습니다.", events=_events_payload(service))


@api_bp.route('/events/<event_id>', methods=['DELETE'])
@handle_errors
@with_scheduler
def delete_event(service, event_id):
    confirmed = _confirmed()
    result = service.delete_event(event_id, confirm=lambda: confirmed)
    return _mutation_response(result, "일정이 삭제되었습니다.", events=_events_payload(service))


# ===== 후보 시간표 =====

def _schedules_payload(service):
    return {
        "schedules": service.schedule_listing(),
        "render_favorites": service.render_favorites,
        "selected_index": service.selected_schedule_index,
    }


@api_bp.route('/schedules', methods=['GET'])
@handle_errors
@with_scheduler
def get_schedules(service):
    return jsonify({"success": True, **_schedules_payload(service)})


@api_bp.route('/schedules/generate', methods=['POST'])
@handle_errors
@with_scheduler
def generate_schedules(service):
    """수강 과목 조건과 사용자 일정으로 후보 시간표 생성"""
    ok = service.generate_schedules()
    body = {"success": ok, "scrape": service.scrape_state.to_dict(), **_schedules_payload(service)}
    if not ok:
        body['error'] = service.scrape_state.status
        return jsonify(body), 500
    return jsonify(body)


@api_bp.route('/schedules/favorite', methods=['POST'])
@handle_errors
@with_scheduler
def toggle_favorite(service):
    data = _json_body()
    schedule = data.get('schedule')
    if schedule is None:
        key = data.get('key')
        if not key:
            raise ValidationError({"key": "즐겨찾기할 시간표 키가 필요합니다."})
        schedule = service.find_schedule(key)
        if schedule is None:
            raise LookupError(f"시간표를 찾을 수 없음: {key}")
    result = service.toggle_favorite(schedule)
    return _mutation_response(result, "즐겨찾기가 변경되었습니다.", **_schedules_payload(service))


@api_bp.route('/schedules', methods=['DELETE'])
@handle_errors
@with_scheduler
def delete_schedule(service):
    data = request.get_json(silent=True) or {}
    key = data.get('key') or request.args.get('key')
    confirmed = _confirmed()
    result = service.delete_schedule(key, confirm=lambda: confirmed)
    return _mutation_response(result, "시간표가 삭제되었습니다.", **_schedules_payload(service))


@api_bp.route('/schedules/selected', methods=['PUT'])
@handle_errors
@with_scheduler
def set_selected_schedule(service):
    """시간표 고정 / 해제 (같은 번호를 다시 보내면 해제)"""
    index = _optional_index(_json_body())
    if not service.set_selected_schedule(index):
        return jsonify({"success": False, "error": service.scheduler_error}), 500
    return jsonify({"success": True, "selected_index": service.selected_schedule_index})


@api_bp.route('/schedules/hovered', methods=['PUT'])
@handle_errors
@with_scheduler
def set_hovered_schedule(service):
    """미리보기 시간표 지정 (index 가 null 이면 해제)"""
    index = _optional_index(_json_body())
    schedule = None
    if index is not None:
        source = service.favorites.items if service.render_favorites else service.schedules.items
        if not 0 <= index < len(source):
            raise ValueError("시간표 번호가 올바르지 않습니다.")
        schedule = source[index]
    service.set_hovered_schedule(schedule)
    return jsonify({"success": True, "hovered": schedule is not None})


@api_bp.route('/schedules/render-favorites', methods=['POST'])
@handle_errors
@with_scheduler
def toggle_render_favorites(service):
    service.toggle_render_favorites()
    return jsonify({"success": True, **_schedules_payload(service)})


@api_bp.route('/params/<name>/toggle', methods=['POST'])
@handle_errors
@with_scheduler
def toggle_param(service, name):
    service.toggle_param_checkbox(name)
    return jsonify({"success": True, "params": dict(service.param_checkboxes)})


# ===== 수강 과목 조건 =====

@api_bp.route('/classes', methods=['GET'])
@handle_errors
@with_scheduler
def get_classes(service):
    return jsonify({"success": True, "classes": _classes_payload(service)})


@api_bp.route('/classes', methods=['POST'])
@handle_errors
@with_scheduler
def add_class(service):
    """빈 수강 과목 카드 추가 (첫 저장 전까지 세션에만 존재)"""
    class_param = service.add_class()
    return jsonify({"success": True, "class": class_param.to_dict(), "classes": _classes_payload(service)})


@api_bp.route('/classes/<class_id>', methods=['PUT'])
@handle_errors
@with_scheduler
def update_class(service, class_id):
    class_param = validate_class_param(_json_body(), class_id)
    result = service.update_class(class_param)
    return _mutation_response(result, "수강 과목이 저장되었습니다.", classes=_classes_payload(service))


@api_bp.route('/classes/<class_id>', methods=['DELETE'])
@handle_errors
@with_scheduler
def delete_class(service, class_id):
    confirmed = _confirmed()
    result = service.delete_class(class_id, confirm=lambda: confirmed)
    return _mutation_response(result, "수강 과목이 삭제되었습니다.", classes=_classes_payload(service))


@api_bp.route('/classes/<class_id>/fields', methods=['POST'])
@handle_errors
@with_scheduler
def edit_class_field(service, class_id):
    """입력 중 필드 변경 - 검증 상태만 갱신"""
    data = _json_body()
    field = data.get('field')
    if not field:
        raise ValidationError({"field": "수정할 필드를 지정해주세요."})
    editor = service.edit_class_field(class_id, field, data.get('value', ''))
    return jsonify({"success": True, "editor": editor.to_dict()})


@api_bp.route('/classes/<class_id>/blur', methods=['POST'])
@handle_errors
@with_scheduler
def blur_class(service, class_id):
    """포커스 이탈 - 유효하면 저장, 아니면 이전 값 복원"""
    editor = service.class_editor(class_id)
    was_valid = editor.is_valid
    result = service.blur_class(class_id)
    body = {"editor": editor.to_dict(), "classes": _classes_payload(service)}
    if result is None:
        return jsonify({"success": was_valid, "status": "unchanged" if was_valid else "restored", **body})
    return _mutation_response(result, "수강 과목이 저장되었습니다.", **body)


# ===== 엑셀 가져오기 =====

@api_bp.route('/sheets', methods=['POST'])
@handle_errors
def get_sheets():
    """엑셀 파일 업로드 후 시트 목록 반환"""
    from services.excel_parser import get_sheet_names

    if 'file' not in request.files:
        return jsonify({"success": False, "error": "파일이 없습니다."}), 400

    file = request.files['file']
    if file.filename == '':
        return jsonify({"success": False, "error": "파일이 선택되지 않았습니다."}), 400

    ext = file.filename.rsplit('.', 1)[-1].lower() if '.' in file.filename else ''
    if ext not in Config.ALLOWED_EXTENSIONS:
        return jsonify({"success": False, "error": "xlsx 또는 xls 파일만 업로드 가능합니다."}), 400

    original_name = secure_filename(file.filename) or 'upload.xlsx'
    safe_name = f"{uuid.uuid4().hex[:8]}_{original_name}"
    filepath = os.path.join(Config.UPLOAD_FOLDER, safe_name)
    os.makedirs(Config.UPLOAD_FOLDER, exist_ok=True)
    file.save(filepath)

    # 실제 엑셀 파일인지 검증
    try:
        sheets = get_sheet_names(filepath)
    except Exception as e:
        logger.warning(f"엑셀 파일 읽기 실패: {e}")
        _remove_upload(filepath)
        return jsonify({"success": False, "error": "유효한 엑셀 파일이 아닙니다."}), 400

    if not sheets:
        _remove_upload(filepath)
        return jsonify({"success": False, "error": "유효한 시트를 찾을 수 없습니다."}), 400
    return jsonify({"success": True, "sheets": sheets, "filepath": filepath})


@api_bp.route('/classes/import', methods=['POST'])
@handle_errors
@with_scheduler
def import_classes(service):
    """업로드한 엑셀에서 수강 과목 조건 가져오기"""
    from services.excel_parser import parse_class_parameters

    data = _json_body()
    filepath = data.get('filepath')
    selected_sheets = data.get('sheets') or None

    if not filepath or not os.path.exists(filepath):
        return jsonify({"success": False, "error": "업로드된 파일을 찾을 수 없습니다."}), 400

    # Path Traversal 방지: filepath가 UPLOAD_FOLDER 내부인지 검증
    real_filepath = os.path.realpath(filepath)
    real_upload_folder = os.path.realpath(Config.UPLOAD_FOLDER)
    if not real_filepath.startswith(real_upload_folder + os.sep):
        logger.warning(f"Path Traversal 시도 감지: {filepath}")
        return jsonify({"success": False, "error": "잘못된 파일 경로입니다."}), 400

    try:
        records = parse_class_parameters(filepath, selected_sheets)
    except Exception as e:
        logger.error(f"수강 과목 파싱 오류: {e}", exc_info=True)
        return jsonify({"success": False, "error": "엑셀 파싱 중 오류가 발생했습니다. 엑셀 형식을 확인해주세요."}), 400
    finally:
        _remove_upload(filepath)

    if not records:
        return jsonify({"success": False, "error": "가져올 수강 과목이 없습니다. 엑셀 형식을 확인해주세요."}), 400

    results = service.import_classes(records)
    imported = sum(1 for r in results if r.ok)
    logger.info(f"수강 과목 가져오기 완료: {imported}/{len(results)}건")
    return jsonify({
        "success": imported > 0,
        "message": f"{imported}개 수강 과목을 가져왔습니다.",
        "imported": imported,
        "failed": len(results) - imported,
        "classes": _classes_payload(service),
    })
