import logging
from datetime import datetime
from typing import Iterator, List, Optional, Tuple, Union

from core.models import Document, Element, ScannedDocument, ValueType
from core.utils import ContentHasher, document_uuid, now_ms
from indexing.keywords import KeywordDirectory

logger = logging.getLogger(__name__)

ABBREVIATIONS = {
    "AssetAdministrationShell": "aas",
    "Submodel": "sm",
    "SubmodelElementCollection": "smc",
    "SubmodelElementList": "sml",
    "Property": "prop",
    "MultiLanguageProperty": "mlp",
    "Range": "range",
    "File": "file",
    "Blob": "blob",
    "ReferenceElement": "ref",
    "RelationshipElement": "rel",
    "AnnotatedRelationshipElement": "rela",
    "Capability": "cap",
    "Operation": "op",
    "Entity": "ent",
    "BasicEventElement": "evt",
}

STRING_TYPES = frozenset({
    "string", "anyuri", "normalizedstring", "token", "language", "name", "ncname", "id", "idref",
})

NUMBER_TYPES = frozenset({
    "decimal", "integer", "int", "long", "short", "byte", "double", "float",
    "nonnegativeinteger", "nonpositiveinteger", "negativeinteger", "positiveinteger",
    "unsignedlong", "unsignedint", "unsignedshort", "unsignedbyte",
})

DATE_TYPES = frozenset({"date", "datetime", "datetimestamp"})

# child containers per modelType
CHILDREN = {
    "Submodel": "submodelElements",
    "SubmodelElementCollection": "value",
    "SubmodelElementList": "value",
    "Entity": "statements",
    "AnnotatedRelationshipElement": "annotations",
}

ElementValue = Tuple[Optional[ValueType], Union[bool, float, datetime, str, None]]


class DocumentConverter:
    """Convert an AAS environment to a Document and its flattened Elements"""

    def __init__(
        self,
        keywords: KeywordDirectory,
        max_string_length: int = 128,
        max_keyword_length: int = 512,
    ):
        self.keywords = keywords
        self.max_string_length = max_string_length
        self.max_keyword_length = max_keyword_length

    def to_scanned_document(
        self,
        endpoint: str,
        address: str,
        environment: dict,
        thumbnail: Optional[str] = None,
    ) -> ScannedDocument:
        """AAS environment -> Document + Elements"""
        shells = environment.get("assetAdministrationShells") or []
        if not shells:
            raise ValueError(f"{address} does not contain an Asset Administration Shell.")

        shell = shells[0]
        uuid = document_uuid(endpoint, shell["id"])
        document = Document(
            uuid=uuid,
            endpoint=endpoint,
            id=shell["id"],
            address=address,
            content_hash=ContentHasher.hash_content(environment),
            id_short=shell.get("idShort", ""),
            asset_id=(shell.get("assetInformation") or {}).get("globalAssetId"),
            thumbnail=thumbnail,
            timestamp=now_ms(),
        )

        return ScannedDocument(document=document, elements=self.to_elements(uuid, environment))

    def to_elements(self, uuid: str, environment: dict) -> List[Element]:
        elements = []
        for submodel in environment.get("submodels") or []:
            for referable in self._flatten(submodel):
                element = self._to_element(uuid, referable)
                if element is not None:
                    elements.append(element)

        return elements

    def _flatten(self, referable: dict) -> Iterator[dict]:
        yield referable
        children = CHILDREN.get(model_type_of(referable))
        for child in (referable.get(children) or []) if children else []:
            if isinstance(child, dict):
                yield from self._flatten(child)

    def _to_element(self, uuid: str, referable: dict) -> Optional[Element]:
        model_type = model_type_of(referable)
        abbreviation = ABBREVIATIONS.get(model_type)
        if abbreviation is None:
            logger.debug(f"Skipping unknown modelType '{model_type}'")
            return None

        value_type, value = self._to_value(model_type, referable)
        return Element(
            uuid=uuid,
            model_type=abbreviation,
            id=referable.get("id") if model_type == "Submodel" else None,
            id_short=referable.get("idShort", ""),
            value_type=value_type,
            value=value,
        )

    def _to_value(self, model_type: str, referable: dict) -> ElementValue:
        if model_type == "Property":
            return self._property_value(referable)
        if model_type == "MultiLanguageProperty":
            text = self._language_strings(referable.get("value"))
            return (ValueType.STRING, text) if text else (None, None)
        if model_type == "File" and referable.get("value"):
            return ValueType.STRING, referable["value"]
        if model_type == "Blob" and referable.get("contentType"):
            return ValueType.STRING, referable["contentType"]

        return None, None

    def _property_value(self, referable: dict) -> ElementValue:
        value = referable.get("value")
        if value is None or value == "":
            return None, None

        base = base_type(referable.get("valueType", "xs:string"))
        try:
            if base in STRING_TYPES:
                return ValueType.STRING, self._preprocess_string(str(value))
            if base in NUMBER_TYPES:
                return ValueType.NUMBER, float(value)
            if base in DATE_TYPES:
                return ValueType.DATE, datetime.fromisoformat(str(value).replace("Z", "+00:00"))
            if base == "boolean":
                return ValueType.BOOLEAN, str(value).strip().lower() in ("true", "1")
        except ValueError:
            logger.debug(f"Invalid {base} value '{value}' in {referable.get('idShort')}")

        return None, None

    def _preprocess_string(self, value: str) -> str:
        if len(value) < self.max_string_length:
            return value

        return self.keywords.to_string(
            self.keywords.contained_keyword(value), ";", self.max_keyword_length
        )

    def _language_strings(self, items) -> str:
        if isinstance(items, str):
            return self._preprocess_string(items)

        keywords = []
        for item in items or []:
            text = item.get("text", "")
            if len(text) < 32:
                keywords.append(text)
            else:
                keywords.extend(self.keywords.contained_keyword(text, item.get("language")))

        return self.keywords.to_string(keywords, ";", self.max_keyword_length)


def model_type_of(referable: dict) -> str:
    model_type = referable.get("modelType", "")
    if isinstance(model_type, dict):
        return model_type.get("name", "")
    return model_type


def base_type(value_type: str) -> str:
    return value_type.split(":")[-1].lower()
