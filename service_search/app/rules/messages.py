"""
Message catalog and per-call validation context.
"""

from typing import Dict, Any, Optional
from dataclasses import dataclass, field


MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "validator.missing_required_info": "{label} is required",
        "validator.empty_info": "{label} must not be empty",
        "validator.wrong_type": "{label} must be of type {expected}, got {got}",
        "validator.invalid_numeric_length": "{label} must be between {min} and {max}",
        "validator.invalid_string_length": "{label} must have between {min} and {max} characters",
        "validator.invalid_format": "{label} has an invalid format",
        "validator.multiple_options_chosen": "{label} cannot be sent together with another option of {group}",
        "validator.no_option_chosen": "One of the options of {group} must be sent",
        "validator.unknown_parameter": "Unknown parameter {label}",
        "validator.parameter_in_wrong_http_portion": "{label} was sent in the wrong part of the request",
        "internal.validator.unsupported_type": "Unsupported type {type} declared for {label}",
        "internal.validator.invalid_regex": "Invalid regular expression declared for {label}",
        "internal.validator.non_callable_custom": "Custom validator of {label} is not callable",
        "internal.repository.non_callable_callback": "Condition callback is not callable",
        "internal.repository.invalid_callback_return": "Condition callback returned an invalid value",
        "internal.unknown_internal_error": "Unexpected internal error",
    },
    "pt_BR": {
        "validator.missing_required_info": "{label} é obrigatório",
        "validator.empty_info": "{label} não pode ser vazio",
        "validator.wrong_type": "{label} deve ser do tipo {expected}, recebido {got}",
        "validator.invalid_numeric_length": "{label} deve estar entre {min} e {max}",
        "validator.invalid_string_length": "{label} deve ter entre {min} e {max} caracteres",
        "validator.invalid_format": "{label} possui formato inválido",
        "validator.multiple_options_chosen": "{label} não pode ser enviado junto com outra opção de {group}",
        "validator.no_option_chosen": "Uma das opções de {group} deve ser enviada",
        "validator.unknown_parameter": "Parâmetro desconhecido {label}",
        "validator.parameter_in_wrong_http_portion": "{label} foi enviado na parte errada da requisição",
        "internal.unknown_internal_error": "Erro interno inesperado",
    },
}


class _Params(dict):
    def __missing__(self, key):
        return "{" + key + "}"


class Translator:
    """Renders error codes into messages for a locale."""

    def __init__(self, catalogs: Optional[Dict[str, Dict[str, str]]] = None, default_locale: str = "en"):
        self.catalogs = catalogs if catalogs is not None else MESSAGES
        self.default_locale = default_locale

    def translate(self, code: str, params: Optional[Dict[str, Any]] = None, locale: Optional[str] = None) -> str:
        template = self._lookup(code, locale or self.default_locale)
        if template is None:
            template = self._lookup(code, self.default_locale)
        if template is None:
            return code
        return template.format_map(_Params(params or {}))

    def _lookup(self, code: str, locale: str) -> Optional[str]:
        catalog = self.catalogs.get(locale, {})
        if code in catalog:
            return catalog[code]
        # request.validator.x and entity.validator.x share validator.x
        if not code.startswith("internal.") and "validator." in code:
            return catalog.get(code[code.index("validator."):])
        return None


@dataclass
class ValidationContext:
    """Explicit per-call context handed to validators and compilers."""
    translator: Translator = field(default_factory=Translator)
    locale: Optional[str] = None
    user_id: Optional[str] = None

    def translate(self, code: str, params: Optional[Dict[str, Any]] = None) -> str:
        return self.translator.translate(code, params, self.locale)
