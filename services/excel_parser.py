"""
수강 과목 조건 엑셀 파서
"""
import logging
import openpyxl

from utils.validators import validate_course_code, validate_instructor, validate_section

logger = logging.getLogger(__name__)

# 건너뛸 시트 (정보 페이지)
INFO_SHEETS = {'정보', 'Info', 'README'}

# 헤더 행 탐색 범위
HEADER_SCAN_ROWS = 10

# 열 이름 별칭 (소문자 비교)
HEADER_ALIASES = {
    'course': {'course', 'course code', 'code', '과목', '과목코드', '학수번호'},
    'section': {'section', 'sec', '분반'},
    'instructor': {'instructor', 'professor', '교수', '담당교수', '강사'},
}


def get_sheet_names(filepath):
    """엑셀 파일의 시트 목록 반환 (정보 시트 제외)"""
    wb = openpyxl.load_workbook(filepath, data_only=True, read_only=True)
    sheets = [name for name in wb.sheetnames if name not in INFO_SHEETS]
    wb.close()
    return sheets


def _normalize_header(value):
    return str(value).strip().lower() if value is not None else ''


def _find_header(ws):
    """과목 열이 있는 첫 행을 헤더로 판단 → (행 번호, {필드: 열 인덱스})"""
    for row_idx, row in enumerate(ws.iter_rows(min_row=1, max_row=HEADER_SCAN_ROWS, values_only=True), start=1):
        columns = {}
        for col_idx, cell in enumerate(row):
            name = _normalize_header(cell)
            for field, aliases in HEADER_ALIASES.items():
                if name in aliases:
                    columns.setdefault(field, col_idx)
        if 'course' in columns:
            return row_idx, columns
    return None, {}


def _cell(row, col_idx):
    if col_idx is None or col_idx >= len(row):
        return None
    return row[col_idx]


def _cell_text(value):
    if value is None:
        return ''
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _section_text(value):
    # 숫자 셀로 저장된 분반 (1 → "001")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and float(value).is_integer():
        return f"{int(value):03d}"
    return _cell_text(value)


def parse_class_parameters(filepath, sheet_names=None):
    """엑셀 → 수강 과목 조건 목록 (형식이 맞지 않는 행은 건너뜀)"""
    wb = openpyxl.load_workbook(filepath, data_only=True, read_only=True)
    records = []
    try:
        sheets = sheet_names or [name for name in wb.sheetnames if name not in INFO_SHEETS]
        for sheet_name in sheets:
            if sheet_name not in wb.sheetnames:
                logger.warning(f"시트를 찾을 수 없음: {sheet_name}")
                continue

            ws = wb[sheet_name]
            header_row, columns = _find_header(ws)
            if header_row is None:
                logger.warning(f"[{sheet_name}] 과목 헤더를 찾지 못했습니다.")
                continue

            for row_idx, row in enumerate(ws.iter_rows(min_row=header_row + 1, values_only=True),
                                          start=header_row + 1):
                course = _cell_text(_cell(row, columns.get('course')))
                if not course:
                    continue

                code_ok, code_fields = validate_course_code(course)
                section_ok, section_fields = validate_section(_section_text(_cell(row, columns.get('section'))))
                instructor_ok, instructor_fields = validate_instructor(
                    _cell_text(_cell(row, columns.get('instructor'))))
                if not (code_ok and section_ok and instructor_ok):
                    logger.warning(f"[{sheet_name}] {row_idx}행 형식 오류로 건너뜀: {course}")
                    continue

                records.append({"id": "", **code_fields, **section_fields, **instructor_fields})

            logger.info(f"[{sheet_name}] 수강 과목 파싱 완료 (누적 {len(records)}건)")
    finally:
        wb.close()

    return records
