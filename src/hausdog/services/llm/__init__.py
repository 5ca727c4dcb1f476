"""Model clients and response parsing shared by extraction and resolution."""

from hausdog.services.llm.json_response import parse_model_json, parse_model_object

__all__ = ["parse_model_json", "parse_model_object"]
