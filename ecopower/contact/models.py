import re

from pydantic import BaseModel, EmailStr, Field, field_validator

MIN_PHONE_DIGITS = 8
MIN_MESSAGE_LENGTH = 10

# Libellés des sujets proposés par le formulaire du site
SUBJECT_LABELS = {
    "demande-info": "Demande d'information",
    "devis": "Demande de devis",
    "support": "Support technique",
    "partenariat": "Partenariat",
    "autre": "Autre",
}


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    phone: str
    subject: str = Field(..., min_length=1, max_length=200)
    message: str

    @field_validator("name", "subject")
    @classmethod
    def not_blank(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Ce champ est requis")
        return v

    @field_validator("phone")
    @classmethod
    def phone_has_enough_digits(cls, v):
        v = v.strip()
        if len(re.sub(r"[\s\-()]", "", v)) < MIN_PHONE_DIGITS:
            raise ValueError(f"Le téléphone doit contenir au moins {MIN_PHONE_DIGITS} chiffres")
        return v

    @field_validator("message")
    @classmethod
    def message_long_enough(cls, v):
        v = v.strip()
        if len(v) < MIN_MESSAGE_LENGTH:
            raise ValueError(f"Le message doit contenir au moins {MIN_MESSAGE_LENGTH} caractères")
        return v

    @property
    def subject_label(self) -> str:
        return SUBJECT_LABELS.get(self.subject, self.subject)


class AppInfo(BaseModel):
    email: str = ""
    phone: str = ""
    website: str = ""
    description: str = ""
