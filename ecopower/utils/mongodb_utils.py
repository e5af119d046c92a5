# ecopower/utils/mongodb_utils.py
from bson import ObjectId
from bson.errors import InvalidId
from typing import Any, Dict, List, Optional

from ecopower import errors


def to_object_id(value: Any, label: str = "Identifiant") -> ObjectId:
    """
    Convertit une chaîne en ObjectId

    Raises:
        errors.ValidationError: si la valeur n'est pas un ObjectId valide
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise errors.ValidationError(f"{label} invalide : {value}")


def _convert_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return convert_mongodb_result(value)
    if isinstance(value, list):
        return [_convert_value(item) for item in value]
    # datetime et types simples restent tels quels
    return value


def convert_mongodb_result(result: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Convertit un document MongoDB pour qu'il soit sérialisable en JSON

    Args:
        result: Document retourné par MongoDB

    Returns:
        Copie du document, ObjectId convertis en chaînes
    """
    if not result:
        return result
    return {key: _convert_value(value) for key, value in result.items()}


def convert_mongodb_results(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [convert_mongodb_result(result) for result in results]


