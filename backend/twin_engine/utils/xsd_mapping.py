"""
XSD to semantic data type mapping.

Maps XML Schema datatypes of submodel template elements to the data type
tags of semantic tree leaves, and back to lexical values for filling.
"""

from datetime import datetime
from typing import Any

from basyx.aas import model

from twin_engine.services.semantic_tree import DataType

# Mapping from XSD datatypes to leaf data types
XSD_TO_DATA_TYPE: dict[str, DataType] = {
    # String types
    "xs:string": DataType.STRING,
    "xs:normalizedString": DataType.STRING,
    "xs:token": DataType.STRING,
    "xs:language": DataType.STRING,
    "xs:anyURI": DataType.STRING,
    "xs:base64Binary": DataType.STRING,
    "xs:hexBinary": DataType.STRING,
    # Boolean
    "xs:boolean": DataType.BOOLEAN,
    # Numeric types (decimal-based)
    "xs:decimal": DataType.NUMBER,
    "xs:float": DataType.NUMBER,
    "xs:double": DataType.NUMBER,
    # Integer types
    "xs:integer": DataType.INTEGER,
    "xs:int": DataType.INTEGER,
    "xs:long": DataType.INTEGER,
    "xs:short": DataType.INTEGER,
    "xs:byte": DataType.INTEGER,
    "xs:nonPositiveInteger": DataType.INTEGER,
    "xs:negativeInteger": DataType.INTEGER,
    "xs:nonNegativeInteger": DataType.INTEGER,
    "xs:positiveInteger": DataType.INTEGER,
    "xs:unsignedInt": DataType.INTEGER,
    "xs:unsignedLong": DataType.INTEGER,
    "xs:unsignedShort": DataType.INTEGER,
    "xs:unsignedByte": DataType.INTEGER,
    # Date and time types
    "xs:dateTime": DataType.TIMESTAMP,
    "xs:date": DataType.STRING,
    "xs:time": DataType.STRING,
    "xs:gYear": DataType.STRING,
    "xs:gYearMonth": DataType.STRING,
    "xs:gMonth": DataType.STRING,
    "xs:gMonthDay": DataType.STRING,
    "xs:gDay": DataType.STRING,
    "xs:duration": DataType.STRING,
}


def xsd_type_name(value_type: Any) -> str:
    """
    Get the ``xs:`` name of a basyx value type.

    Accepts basyx datatype classes as well as plain ``xs:`` strings.
    """
    if value_type is None:
        return "xs:string"
    if isinstance(value_type, str):
        return value_type if value_type.startswith("xs:") else f"xs:{value_type}"
    return model.datatypes.XSD_TYPE_NAMES.get(value_type, "xs:string")


def get_data_type(value_type: Any) -> DataType:
    """
    Get the leaf data type for an XSD value type.

    Args:
        value_type: basyx datatype class or ``xs:`` name

    Returns:
        Data type tag; unknown XSD types map to STRING
    """
    return XSD_TO_DATA_TYPE.get(xsd_type_name(value_type), DataType.STRING)


def to_lexical(value: Any) -> str:
    """Render a typed leaf value in XSD lexical form."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
