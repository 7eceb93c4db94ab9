"""
Tests for the template filler.
"""

import pytest
from basyx.aas import model

from conftest import INDEX, multiplicity, ref, with_values
from twin_engine.exceptions import InternalDataError
from twin_engine.schemas.descriptors import (
    AssetAdministrationShell,
    AssetData,
    AssetInformation,
    Endpoint,
    ProtocolInformation,
    Resource,
    ShellDescriptor,
    ShellDescriptorMetadata,
    SpecificAssetId,
    SpecificAssetIdData,
    SubmodelDescriptor,
    ThumbnailData,
)
from twin_engine.services.json_schema import parse_response
from twin_engine.services.semantic_extractor import SemanticTreeExtractor
from twin_engine.services.template_filler import TemplateFiller


def element(container, id_short: str):
    """Find a direct child element by idShort."""
    return next(e for e in container if e.id_short == id_short)


@pytest.fixture
def filler() -> TemplateFiller:
    return TemplateFiller(SemanticTreeExtractor())


@pytest.fixture
def nameplate_tree(nameplate_template):
    return SemanticTreeExtractor().extract(nameplate_template)


class TestFillSubmodel:
    """Tests for TemplateFiller.fill_submodel."""

    def test_properties_filled(self, filler, nameplate_template, nameplate_tree):
        """Test plugin values land on the matching properties."""
        values = with_values(nameplate_tree, {"urn:manufacturer": "ACME", "urn:year": 2020})
        submodel = filler.fill_submodel(nameplate_template, values)

        assert element(submodel.submodel_element, "ManufacturerName").value == "ACME"
        assert element(submodel.submodel_element, "YearOfConstruction").value == 2020

    def test_absent_values_keep_template(self, filler, nameplate_template, nameplate_tree):
        """Test elements without a plugin value keep the template content."""
        submodel = filler.fill_submodel(nameplate_template, with_values(nameplate_tree, {}))

        assert (
            element(submodel.submodel_element, "ManufacturerName").value
            == "template manufacturer"
        )
        assert element(submodel.submodel_element, "Untracked").value == "kept"

    def test_template_not_mutated(self, filler, nameplate_template, nameplate_tree):
        """Test filling works on a copy."""
        filled = filler.fill_submodel(
            nameplate_template, with_values(nameplate_tree, {"urn:manufacturer": "ACME"})
        )

        assert filled is not nameplate_template
        assert (
            element(nameplate_template.submodel_element, "ManufacturerName").value
            == "template manufacturer"
        )

    def test_multilanguage(self, filler, nameplate_template, nameplate_tree):
        """Test languages are filled one by one."""
        values = with_values(nameplate_tree, {"urn:designation_en": "Widget"})
        submodel = filler.fill_submodel(nameplate_template, values)

        designation = element(submodel.submodel_element, "ProductDesignation")
        assert dict(designation.value) == {"en": "Widget", "de": "Vorlage"}

    def test_range(self, filler, nameplate_template, nameplate_tree):
        """Test range bounds are filled and typed."""
        values = with_values(
            nameplate_tree, {"urn:temperature_min": -20.0, "urn:temperature_max": 85}
        )
        submodel = filler.fill_submodel(nameplate_template, values)

        temperature = element(submodel.submodel_element, "Temperature")
        assert temperature.min == -20.0
        assert temperature.max == 85.0

    def test_nested_collection(self, filler, nameplate_template, nameplate_tree):
        """Test collection children are filled."""
        values = with_values(nameplate_tree, {"urn:street": "Main Street 1"})
        submodel = filler.fill_submodel(nameplate_template, values)

        address = element(submodel.submodel_element, "Address")
        assert element(address.value, "Street").value == "Main Street 1"
        assert element(address.value, "City").value is None

    def test_list_items_by_position(self, filler, nameplate_template, nameplate_tree):
        """Test list items are matched by their position."""
        path = ("urn:nameplate", "urn:markings", f"urn:marking{INDEX}2", "urn:marking-name")
        submodel = filler.fill_submodel(
            nameplate_template, with_values(nameplate_tree, {path: "CE"})
        )

        items = list(element(submodel.submodel_element, "Markings").value)
        assert element(items[0].value, "MarkingName").value is None
        assert element(items[1].value, "MarkingName").value == "CE"

    def test_file(self, filler, nameplate_template, nameplate_tree):
        """Test file paths are filled."""
        values = with_values(nameplate_tree, {"urn:logo": "/files/logo.png"})
        submodel = filler.fill_submodel(nameplate_template, values)

        logo = element(submodel.submodel_element, "Logo")
        assert logo.value == "/files/logo.png"
        assert logo.content_type == "image/png"

    def test_blob(self, filler):
        """Test blob values are decoded from base64."""
        template = model.Submodel(
            id_="urn:template:blob",
            semantic_id=ref("urn:blob-root"),
            submodel_element=[
                model.Blob(
                    id_short="Data",
                    content_type="application/octet-stream",
                    semantic_id=ref("urn:data"),
                )
            ],
        )
        tree = SemanticTreeExtractor().extract(template)

        submodel = filler.fill_submodel(template, with_values(tree, {"urn:data": "aGVsbG8="}))
        assert element(submodel.submodel_element, "Data").value == b"hello"

        with pytest.raises(InternalDataError):
            filler.fill_submodel(template, with_values(tree, {"urn:data": "***"}))

    def test_reference_element(self, filler):
        """Test reference keys are replaced and keep their types."""
        template = model.Submodel(
            id_="urn:template:ref",
            semantic_id=ref("urn:ref-root"),
            submodel_element=[
                model.ReferenceElement(
                    id_short="Target",
                    semantic_id=ref("urn:target"),
                    value=model.ModelReference(
                        (model.Key(model.KeyTypes.SUBMODEL, "urn:sm:old"),), model.Submodel
                    ),
                )
            ],
        )
        tree = SemanticTreeExtractor().extract(template)

        submodel = filler.fill_submodel(template, with_values(tree, {"urn:target": ["urn:sm:new"]}))

        keys = list(element(submodel.submodel_element, "Target").value.key)
        assert [(k.type, k.value) for k in keys] == [(model.KeyTypes.SUBMODEL, "urn:sm:new")]


class TestFillRepeatedElements:
    """Tests for elements filled with several occurrences."""

    @pytest.fixture
    def contacts_tree(self, contacts_template):
        return SemanticTreeExtractor().extract(contacts_template)

    @staticmethod
    def values(tree, contacts=None, tags=None):
        return parse_response(
            {"urn:contacts": {"urn:contact": contacts, "urn:tag": tags}}, tree
        )

    def test_repeated_property(self, filler, contacts_template, contacts_tree):
        """Test each value of a repeated property gets its own element."""
        submodel = filler.fill_submodel(
            contacts_template, self.values(contacts_tree, tags=["a", "b", "c"])
        )

        tags = [e for e in submodel.submodel_element if e.id_short.startswith("Tag")]
        assert [(e.id_short, e.value) for e in tags] == [
            ("Tag0", "a"),
            ("Tag1", "b"),
            ("Tag2", "c"),
        ]
        assert element(submodel.submodel_element, "Untracked").value == "kept"

    def test_repeated_collection(self, filler, contacts_template, contacts_tree):
        """Test each occurrence of a collection is filled into its own copy."""
        contacts = [
            {"urn:contact-name": "Ann", "urn:phone": "1"},
            {"urn:contact-name": "Bob"},
            {"urn:contact-name": "Cid", "urn:phone": "3"},
        ]
        submodel = filler.fill_submodel(contacts_template, self.values(contacts_tree, contacts))

        filled = [
            (
                e.id_short,
                element(e.value, "ContactName").value,
                element(e.value, "Phone").value,
            )
            for e in submodel.submodel_element
            if isinstance(e, model.SubmodelElementCollection)
        ]
        assert filled == [
            ("Contact0", "Ann", "1"),
            ("Contact1", "Bob", None),
            ("Contact2", "Cid", "3"),
        ]
        assert [e.id_short for e in submodel.submodel_element][-1] == "Untracked"

    def test_single_occurrence_in_place(self, filler, contacts_template, contacts_tree):
        """Test one occurrence fills the template element without renaming it."""
        submodel = filler.fill_submodel(
            contacts_template,
            self.values(contacts_tree, [{"urn:contact-name": "Ann"}], tags=["a"]),
        )

        contact = element(submodel.submodel_element, "Contact")
        assert element(contact.value, "ContactName").value == "Ann"
        assert element(submodel.submodel_element, "Tag").value == "a"

    def test_no_occurrences_keep_template(self, filler, contacts_template, contacts_tree):
        """Test an empty answer leaves the template element as it is."""
        submodel = filler.fill_submodel(
            contacts_template, self.values(contacts_tree, contacts=[], tags=[])
        )
        assert [e.id_short for e in submodel.submodel_element] == [
            "Contact",
            "Tag",
            "Untracked",
        ]

    def test_template_keeps_one_element(self, filler, contacts_template, contacts_tree):
        """Test expanding works on the copy only."""
        filler.fill_submodel(contacts_template, self.values(contacts_tree, tags=["a", "b"]))
        assert [e.id_short for e in contacts_template.submodel_element] == [
            "Contact",
            "Tag",
            "Untracked",
        ]

    def test_repeated_list_item(self, filler):
        """Test a repeated list item is copied without an idShort per occurrence."""
        template = model.Submodel(
            id_="urn:template:markings",
            semantic_id=ref("urn:markings-root"),
            submodel_element=[
                model.SubmodelElementList(
                    id_short="Markings",
                    type_value_list_element=model.SubmodelElementCollection,
                    semantic_id_list_element=ref("urn:marking"),
                    semantic_id=ref("urn:markings"),
                    value=[
                        model.SubmodelElementCollection(
                            id_short=None,
                            semantic_id=ref("urn:marking"),
                            qualifier=[multiplicity("OneToMany")],
                            value=[
                                model.Property(
                                    id_short="MarkingName",
                                    value_type=model.datatypes.String,
                                    semantic_id=ref("urn:marking-name"),
                                )
                            ],
                        )
                    ],
                )
            ],
        )
        tree = SemanticTreeExtractor().extract(template)
        payload = {
            "urn:markings-root": {
                "urn:markings": {
                    f"urn:marking{INDEX}1": [
                        {"urn:marking-name": "CE"},
                        {"urn:marking-name": "UKCA"},
                        {"urn:marking-name": "FCC"},
                    ]
                }
            }
        }

        submodel = filler.fill_submodel(template, parse_response(payload, tree))

        items = list(element(submodel.submodel_element, "Markings").value)
        assert [element(item.value, "MarkingName").value for item in items] == [
            "CE",
            "UKCA",
            "FCC",
        ]


class TestFillDescriptors:
    """Tests for shell and submodel descriptor filling."""

    def test_shell_descriptor(self, filler):
        """Test identity fields and the endpoint are overwritten."""
        template = ShellDescriptor.create_default()
        template.specificAssetIds = [SpecificAssetId(name="old", value="1")]
        metadata = ShellDescriptorMetadata(
            id="urn:aas:1",
            idShort="Pump",
            globalAssetId="urn:asset:1",
            specificAssetIds=[SpecificAssetIdData(name="serial", value=None)],
        )

        descriptor = filler.fill_shell_descriptor(template, metadata, "http://x/shells/abc")

        assert descriptor.id == "urn:aas:1"
        assert descriptor.idShort == "Pump"
        assert descriptor.globalAssetId == "urn:asset:1"
        assert descriptor.specificAssetIds == [SpecificAssetId(name="serial", value="")]
        assert descriptor.endpoints[0].protocolInformation.href == "http://x/shells/abc"
        assert template.id == ""
        assert template.specificAssetIds[0].name == "old"

    def test_shell_descriptor_copies_independent(self, filler):
        """Test each row gets its own copy."""
        rows = [ShellDescriptorMetadata(id="a"), ShellDescriptorMetadata(id="b")]
        descriptors = filler.fill_shell_descriptors(
            ShellDescriptor.create_default(), rows, lambda row: f"http://x/{row.id}"
        )

        assert [d.id for d in descriptors] == ["a", "b"]
        assert [d.endpoints[0].protocolInformation.href for d in descriptors] == [
            "http://x/a",
            "http://x/b",
        ]

    def test_shell_descriptor_without_endpoint(self, filler):
        """Test a template without endpoints cannot be filled."""
        with pytest.raises(InternalDataError):
            filler.fill_shell_descriptor(
                ShellDescriptor(id="t"), ShellDescriptorMetadata(id="a"), "http://x"
            )

    def test_submodel_descriptor(self, filler):
        """Test every endpoint gets the href."""
        template = SubmodelDescriptor(
            id="urn:template",
            endpoints=[
                Endpoint(interface="SUBMODEL-3.0", protocolInformation=ProtocolInformation()),
                Endpoint(interface="SUBMODEL-3.0", protocolInformation=ProtocolInformation()),
            ],
        )
        descriptor = filler.fill_submodel_descriptor(template, "urn:sm:1", "http://x/sm")

        assert descriptor.id == "urn:sm:1"
        assert {e.protocolInformation.href for e in descriptor.endpoints} == {"http://x/sm"}
        assert template.endpoints[0].protocolInformation.href == ""

    def test_submodel_descriptor_default_endpoint(self, filler):
        """Test an endpoint is added when the template has none."""
        descriptor = filler.fill_submodel_descriptor(
            SubmodelDescriptor(), "urn:sm:1", "http://x/sm"
        )
        assert len(descriptor.endpoints) == 1
        assert descriptor.endpoints[0].protocolInformation.href == "http://x/sm"


class TestFillAssetInformation:
    """Tests for asset information and shell filling."""

    def test_thumbnail_needs_path_and_content_type(self, filler):
        """Test incomplete thumbnails leave the template's thumbnail alone."""
        template = AssetInformation(defaultThumbnail=Resource(path="/default.png"))
        data = AssetData(
            globalAssetId="urn:asset:1", defaultThumbnail=ThumbnailData(path="/new.png")
        )

        info = filler.fill_asset_information(template, data)

        assert info.defaultThumbnail.path == "/default.png"
        assert info.globalAssetId == "urn:asset:1"

    def test_thumbnail_replaced(self, filler):
        """Test a complete thumbnail replaces the template's."""
        data = AssetData(
            defaultThumbnail=ThumbnailData(path="/new.png", contentType="image/png"),
            specificAssetIds=[SpecificAssetIdData(name="serial", value="42")],
        )
        info = filler.fill_asset_information(AssetInformation(), data)

        assert info.defaultThumbnail == Resource(path="/new.png", contentType="image/png")
        assert info.specificAssetIds == [SpecificAssetId(name="serial", value="42")]

    def test_fill_shell(self, filler):
        """Test the shell gets its id and asset information."""
        template = AssetAdministrationShell(idShort="Template")
        info = AssetInformation(globalAssetId="urn:asset:1")

        shell = filler.fill_shell(template, "urn:aas:1", info)

        assert shell.id == "urn:aas:1"
        assert shell.idShort == "Template"
        assert shell.assetInformation.globalAssetId == "urn:asset:1"
        assert template.id == ""
