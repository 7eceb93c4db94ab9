"""
Tests for semantic tree extraction and XSD mapping.
"""

from unittest.mock import MagicMock

from basyx.aas import model

from conftest import INDEX
from twin_engine.services.semantic_extractor import SemanticTreeExtractor
from twin_engine.services.semantic_tree import BranchNode, Cardinality, DataType, LeafNode
from twin_engine.utils.xsd_mapping import get_data_type, to_lexical, xsd_type_name


class TestSemanticTreeExtractor:
    """Tests for SemanticTreeExtractor."""

    def test_extractor_initialization(self):
        """Test that the extractor picks up configured separators."""
        extractor = SemanticTreeExtractor()
        assert extractor.mlp_postfix_separator == "_"
        assert extractor.index_context_prefix == INDEX

    def test_serialize_reference_none(self):
        """Test serializing None reference."""
        extractor = SemanticTreeExtractor()
        assert extractor._serialize_reference(None) is None

    def test_extract_cardinality_default(self):
        """Test elements without qualifiers have unknown cardinality."""
        extractor = SemanticTreeExtractor()

        # Mock element without qualifiers
        mock_element = MagicMock()
        mock_element.qualifier = []

        assert extractor._extract_cardinality(mock_element) is Cardinality.UNKNOWN

    def test_extract_cardinality_from_qualifier(self):
        """Test extracting cardinality from qualifier."""
        extractor = SemanticTreeExtractor()

        # Mock element with cardinality qualifier
        mock_qualifier = MagicMock()
        mock_qualifier.type_ = "Multiplicity"
        mock_qualifier.value = "[0..1]"

        mock_element = MagicMock()
        mock_element.qualifier = [mock_qualifier]

        assert extractor._extract_cardinality(mock_element) is Cardinality.ZERO_TO_ONE

    def test_internal_semantic_id_qualifier_wins(self):
        """Test the internal semantic ID qualifier overrides the reference."""
        extractor = SemanticTreeExtractor(internal_semantic_id_qualifier="InternalSemanticId")
        mock_qualifier = MagicMock()
        mock_qualifier.type_ = "InternalSemanticId"
        mock_qualifier.value = "urn:internal"

        mock_element = MagicMock()
        mock_element.qualifier = [mock_qualifier]
        mock_element.id_short = "Name"

        assert extractor.node_id(mock_element) == "urn:internal"

    def test_root_and_leaf_shapes(self, nameplate_template):
        """Test the tree mirrors the template."""
        tree = SemanticTreeExtractor().extract(nameplate_template)

        assert tree.semantic_id == "urn:nameplate"
        assert [child.semantic_id for child in tree.children] == [
            "urn:manufacturer",
            "urn:year",
            "urn:designation",
            "urn:temperature",
            "urn:address",
            "urn:markings",
            "urn:logo",
        ]

        manufacturer = tree.child("urn:manufacturer")
        assert isinstance(manufacturer, LeafNode)
        assert manufacturer.cardinality is Cardinality.ONE
        assert manufacturer.data_type is DataType.STRING
        assert tree.child("urn:year").data_type is DataType.INTEGER

    def test_elements_without_semantic_id_skipped(self, nameplate_template):
        """Test the untracked property does not become a node."""
        tree = SemanticTreeExtractor().extract(nameplate_template)
        assert all(child.semantic_id for child in tree.children)
        assert len(tree.children) == 7

    def test_multilanguage_property(self, nameplate_template):
        """Test one leaf per language."""
        tree = SemanticTreeExtractor().extract(nameplate_template)
        designation = tree.child("urn:designation")
        assert isinstance(designation, BranchNode)
        assert {c.semantic_id for c in designation.children} == {
            "urn:designation_en",
            "urn:designation_de",
        }

    def test_range(self, nameplate_template):
        """Test min and max leaves with the range's type."""
        tree = SemanticTreeExtractor().extract(nameplate_template)
        temperature = tree.child("urn:temperature")
        assert [c.semantic_id for c in temperature.children] == [
            "urn:temperature_min",
            "urn:temperature_max",
        ]
        assert all(c.data_type is DataType.NUMBER for c in temperature.children)

    def test_list_items_get_positions(self, nameplate_template):
        """Test list items are suffixed with their 1-based position."""
        tree = SemanticTreeExtractor().extract(nameplate_template)
        markings = tree.child("urn:markings")
        assert [c.semantic_id for c in markings.children] == [
            f"urn:marking{INDEX}1",
            f"urn:marking{INDEX}2",
        ]
        assert markings.children[0].child("urn:marking-name") is not None

    def test_trailing_digits_in_id_short(self):
        """Test repeated collections are told apart by idShort digits."""
        extractor = SemanticTreeExtractor(index_context_prefix="_i_")
        element = model.Property(
            id_short="Marking2",
            value_type=model.datatypes.String,
            semantic_id=model.ExternalReference(
                (model.Key(model.KeyTypes.GLOBAL_REFERENCE, "urn:marking"),)
            ),
        )
        assert extractor.node_id(element) == "urn:marking_i_2"

    def test_property_with_value_id_is_enum(self):
        """Test coded properties become enum codes."""
        element = model.Property(
            id_short="Country",
            value_type=model.datatypes.String,
            value_id=model.ExternalReference(
                (model.Key(model.KeyTypes.GLOBAL_REFERENCE, "urn:codes"),)
            ),
            semantic_id=model.ExternalReference(
                (model.Key(model.KeyTypes.GLOBAL_REFERENCE, "urn:country"),)
            ),
        )
        submodel = model.Submodel(id_="urn:sm", submodel_element=[element])
        tree = SemanticTreeExtractor().extract(submodel)
        assert tree.semantic_id == ""
        assert tree.child("urn:country").data_type is DataType.ENUM_CODE


class TestXSDMapping:
    """Tests for XSD to leaf data type mapping."""

    def test_string_type(self):
        """Test xs:string maps to STRING."""
        assert get_data_type("xs:string") is DataType.STRING

    def test_integer_type(self):
        """Test xs:integer maps to INTEGER."""
        assert get_data_type("xs:integer") is DataType.INTEGER

    def test_date_time_type(self):
        """Test xs:dateTime maps to TIMESTAMP."""
        assert get_data_type("xs:dateTime") is DataType.TIMESTAMP

    def test_boolean_type(self):
        """Test xs:boolean maps to BOOLEAN."""
        assert get_data_type("xs:boolean") is DataType.BOOLEAN

    def test_basyx_type_classes(self):
        """Test basyx datatype classes are understood."""
        assert xsd_type_name(model.datatypes.Double) == "xs:double"
        assert get_data_type(model.datatypes.Double) is DataType.NUMBER

    def test_unknown_type(self):
        """Test unknown type defaults to STRING."""
        assert get_data_type("xs:unknownType") is DataType.STRING

    def test_none_type(self):
        """Test None type defaults to STRING."""
        assert get_data_type(None) is DataType.STRING

    def test_to_lexical(self):
        """Test booleans render in XSD form."""
        assert to_lexical(True) == "true"
        assert to_lexical(3.5) == "3.5"
