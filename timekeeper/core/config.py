from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Firestore REST 엔드포인트
    FIRESTORE_PROJECT_ID: str = "timekeeper-dev"
    FIRESTORE_DATABASE: str = "(default)"
    FIRESTORE_BASE_URL: str = "https://firestore.googleapis.com/v1"
    HTTP_TIMEOUT: float = 5.0

    # 모든 날짜 계산은 배포 지역 시간 기준
    LOCAL_TIMEZONE: str = "Asia/Bangkok"

    DEFAULT_PAGE_SIZE: int = 20
    RECENT_WINDOW: int = 100
    ATTENDANCE_RANGE_LIMIT: int = 500
    HISTORY_LIMIT: int = 50

    # False면 이미 처리된(approved/rejected) 요청의 상태 재변경을 거부
    ALLOW_TERMINAL_REWRITE: bool = True

    # 설정되지 않으면 상태 변경 이벤트 publish 생략
    RABBITMQ_URL: Optional[str] = None
    RABBITMQ_EXCHANGE: str = "timekeeper"
    RABBITMQ_ROUTING_KEY: str = "request.status_changed"

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"  # .env 파일을 통해 환경 변수 관리
        extra = "ignore"

    @property
    def documents_path(self) -> str:
        return (
            f"projects/{self.FIRESTORE_PROJECT_ID}"
            f"/databases/{self.FIRESTORE_DATABASE}/documents"
        )


settings = Settings()
