from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FunnelStage(BaseModel):
    message: str
    reaction: str = "👍"


class ErrorMessages(BaseModel):
    general_error: str = "Maaf, terjadi kesalahan. Silakan coba lagi nanti."
    unsupported_type: str = "Maaf, saat ini kami hanya bisa memproses pesan teks."


class OfflineHours(BaseModel):
    message: str = "Halo {name}! Saat ini di luar jam kerja. Pesan Anda akan dibalas pada hari kerja berikutnya."
    greeting_with_name: bool = True


class ConsultationNotification(BaseModel):
    template: str = "PERMINTAAN KONSULTASI\n\nNama: {name}\nNomor: {phone}\nPesan: \"{message}\"\nWaktu: {timestamp}"


class ListRow(BaseModel):
    id: str
    title: str
    description: Optional[str] = None


class ListSection(BaseModel):
    title: str
    rows: list[ListRow] = Field(default_factory=list)


class ListMenu(BaseModel):
    button_text: str = "Menu"
    footer_text: Optional[str] = None
    sections: list[ListSection] = Field(default_factory=list)


class SystemMessages(BaseModel):
    offline_hours: OfflineHours = Field(default_factory=OfflineHours)
    consultation_notification: ConsultationNotification = Field(default_factory=ConsultationNotification)
    button_text: dict[str, str] = Field(default_factory=dict)
    button_footer: dict[str, str] = Field(default_factory=dict)
    follow_up_messages: dict[str, str] = Field(default_factory=dict)
    list_menu: Optional[ListMenu] = None


class WorkingHours(BaseModel):
    timezone: str = "Asia/Jakarta"
    start_hour: int = Field(default=8, ge=0, le=24)
    end_hour: int = Field(default=17, ge=0, le=24)
    days: list[int] = Field(default_factory=lambda: [0, 1, 2, 3, 4, 5, 6])  # Monday = 0


class FunnelConfig(BaseModel):
    """Funnel document as stored in messages.json / bot_config/messages."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    ebook_link: str
    bonus_link: str
    konsultan_wa: str
    funnel: dict[str, FunnelStage]
    errors: ErrorMessages = Field(default_factory=ErrorMessages)
    system_messages: SystemMessages = Field(default_factory=SystemMessages)
    working_hours: WorkingHours = Field(default_factory=WorkingHours)

    @field_validator("funnel")
    @classmethod
    def _requires_welcome(cls, value: dict[str, FunnelStage]) -> dict[str, FunnelStage]:
        if "welcome" not in value:
            raise ValueError("funnel must define a 'welcome' stage")
        return value


class ButtonSpec(BaseModel):
    id: str
    title: str


class ButtonConfig(BaseModel):
    buttons: list[ButtonSpec]
    footer: Optional[str] = None
    follow_up: Optional[str] = None
