from typing import Dict, Optional


class MissingFieldError(ValueError):
    """One or more required form fields were left blank."""

    def __init__(self, fields):
        self.fields = list(fields)
        super().__init__(f"Required field(s) missing: {', '.join(self.fields)}")


class TextValidator:
    """Required-field checks applied to CLI form input before anything is sent."""

    @staticmethod
    def clean(text: Optional[str]) -> Optional[str]:
        """Trimmed text, or None when nothing is left."""
        if text is None:
            return None
        t = text.strip()
        return t or None

    @staticmethod
    def is_present(text: Optional[str]) -> bool:
        return TextValidator.clean(text) is not None

    @staticmethod
    def require(**fields: Optional[str]) -> Dict[str, str]:
        """Return the trimmed values, raising MissingFieldError listing every blank one."""
        cleaned = {name: TextValidator.clean(value) for name, value in fields.items()}
        missing = [name for name, value in cleaned.items() if value is None]
        if missing:
            raise MissingFieldError(missing)
        return cleaned

    @staticmethod
    def optional(**fields: Optional[str]) -> Dict[str, str]:
        """Trimmed values of the non-blank fields only."""
        cleaned = {name: TextValidator.clean(value) for name, value in fields.items()}
        return {name: value for name, value in cleaned.items() if value is not None}
