"""Localized, display-facing messages keyed by error type.

UI 層と共有する読み取り専用のエラーメッセージ表（タイ語）。
コアはこの表をエラー種別で引くだけで、独自の表示文言は組み立てない。
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, NamedTuple

from .models.common import ErrorType


class ErrorMessage(NamedTuple):
    title: str
    description: str
    action: str


ERROR_MESSAGES: Mapping[ErrorType, ErrorMessage] = MappingProxyType(
    {
        ErrorType.VALIDATION: ErrorMessage(
            title="ข้อมูลไม่ถูกต้อง",
            description="กรุณาตรวจสอบประโยคที่กรอกให้เป็นประโยคเดียวและเป็นภาษาอังกฤษ",
            action="แก้ไขประโยค",
        ),
        ErrorType.API_TIMEOUT: ErrorMessage(
            title="การวิเคราะห์ใช้เวลานานเกินไป",
            description="ระบบใช้เวลาในการวิเคราะห์นานกว่าปกติ กรุณาลองใหม่อีกครั้ง",
            action="ลองใหม่",
        ),
        ErrorType.API_RATE_LIMIT: ErrorMessage(
            title="ใช้งานเกินขีดจำกัด",
            description="คุณใช้งานระบบวิเคราะห์เกินขีดจำกัดแล้ว กรุณารอสักครู่แล้วลองใหม่",
            action="รอ 1 นาที",
        ),
        ErrorType.API_ERROR: ErrorMessage(
            title="เกิดข้อผิดพลาดในการวิเคราะห์",
            description="ระบบ AI มีปัญหาชั่วคราว กรุณาลองใหม่อีกครั้ง",
            action="ลองใหม่",
        ),
        ErrorType.NETWORK_ERROR: ErrorMessage(
            title="ปัญหาการเชื่อมต่อ",
            description="ไม่สามารถเชื่อมต่อกับเซิร์ฟเวอร์ได้ กรุณาตรวจสอบอินเทอร์เน็ต",
            action="ตรวจสอบเน็ต",
        ),
        ErrorType.PARSING_ERROR: ErrorMessage(
            title="เกิดข้อผิดพลาดในการประมวลผล",
            description="ไม่สามารถประมวลผลข้อมูลที่ได้รับจาก AI ได้ กรุณาลองใหม่อีกครั้ง",
            action="ลองใหม่",
        ),
        ErrorType.STRUCTURED_OUTPUT_ERROR: ErrorMessage(
            title="เกิดข้อผิดพลาดในรูปแบบข้อมูล",
            description="ข้อมูลที่ได้รับจาก AI ไม่ตรงตามรูปแบบที่คาดหวัง กรุณาลองใหม่อีกครั้ง",
            action="ลองใหม่",
        ),
        ErrorType.UNKNOWN: ErrorMessage(
            title="เกิดข้อผิดพลาดที่ไม่ทราบสาเหตุ",
            description="เกิดปัญหาที่ไม่คาดคิด กรุณาลองใหม่หรือติดต่อผู้ดูแลระบบ",
            action="ลองใหม่",
        ),
    }
)


def message_for(error_type: ErrorType) -> ErrorMessage:
    return ERROR_MESSAGES.get(error_type, ERROR_MESSAGES[ErrorType.UNKNOWN])
