# ==============================================================================
# routes/reports.py - Report and spreadsheet export endpoints
# ==============================================================================

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from coursetrack.exceptions import CourseTrackBaseException
from coursetrack.routes.dependencies import current_teacher_email
from coursetrack.services import get_report_service
from coursetrack.services.report_service import ExportResult, iter_report_rows
from coursetrack.utils.database import get_store
from coursetrack.utils.document_store import DocumentStore
from coursetrack.utils.exceptions import create_http_exception, http_exception_for

logger = logging.getLogger(__name__)
router = APIRouter()


def _download(result: ExportResult) -> Response:
    if result.content is None:
        # Nothing to export is a valid outcome, reported as a message
        return JSONResponse({"message": result.message, "filename": result.filename})
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.get("/courses/{course_id}/report")
def get_course_report(course_id: str, email: str = Depends(current_teacher_email),
                      store: DocumentStore = Depends(get_store)):
    """Row-per-student course report as JSON"""
    try:
        service = get_report_service(store)
        service.attendance.memberships.require_teacher(course_id, email, "view reports")
        report = service.build_course_report(course_id)
        return {
            "message": report.message,
            "rows": list(iter_report_rows(report)),
            "course_info": dict(report.info_rows()),
        }
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_course_report: {e}")
        raise create_http_exception(500, f"Error building course report: {str(e)}")


@router.get("/courses/{course_id}/report.xlsx")
def download_course_report(course_id: str, email: str = Depends(current_teacher_email),
                           store: DocumentStore = Depends(get_store)):
    try:
        service = get_report_service(store)
        service.attendance.memberships.require_teacher(course_id, email, "export reports")
        return _download(service.export_course_report_xlsx(course_id))
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in download_course_report: {e}")
        raise create_http_exception(500, f"Error exporting course report: {str(e)}")


@router.get("/courses/{course_id}/report.csv")
def download_course_report_csv(course_id: str, email: str = Depends(current_teacher_email),
                               store: DocumentStore = Depends(get_store)):
    try:
        service = get_report_service(store)
        service.attendance.memberships.require_teacher(course_id, email, "export reports")
        return _download(service.export_course_report_csv(course_id))
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in download_course_report_csv: {e}")
        raise create_http_exception(500, f"Error exporting course report: {str(e)}")


@router.get("/class-tests/{ct_id}/marks.xlsx")
def download_class_test_marks(ct_id: str, email: str = Depends(current_teacher_email),
                              store: DocumentStore = Depends(get_store)):
    try:
        service = get_report_service(store)
        class_test = service.class_tests.get_class_test(ct_id)
        service.attendance.memberships.require_teacher(class_test.course_id, email, "export marks")
        return _download(service.export_class_test_xlsx(ct_id))
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in download_class_test_marks: {e}")
        raise create_http_exception(500, f"Error exporting class test marks: {str(e)}")
