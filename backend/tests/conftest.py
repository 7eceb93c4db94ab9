"""
Shared fixtures for the twin engine tests.
"""

import pytest
from basyx.aas import model

from twin_engine.config import get_settings
from twin_engine.schemas.manifest import ConflictPolicy, PluginCapabilities, PluginManifest
from twin_engine.services.manifest_registry import ManifestSnapshot, resolve_conflicts
from twin_engine.services.semantic_tree import BranchNode, Cardinality, DataType, LeafNode

INDEX = get_settings().index_context_prefix


def ref(value: str) -> model.ExternalReference:
    """Build a single-key global reference."""
    return model.ExternalReference((model.Key(model.KeyTypes.GLOBAL_REFERENCE, value),))


def multiplicity(value: str) -> model.Qualifier:
    """Build a cardinality qualifier."""
    return model.Qualifier("Multiplicity", model.datatypes.String, value)


def manifest(name: str, semantic_ids: list[str], **capabilities) -> PluginManifest:
    """Build a plugin manifest."""
    return PluginManifest(
        pluginName=name,
        pluginUrl=f"http://{name.lower()}.local/",
        supportedSemanticIds=semantic_ids,
        capabilities=PluginCapabilities(**capabilities),
    )


def snapshot_of(
    manifests: list[PluginManifest],
    policy: ConflictPolicy = ConflictPolicy.PREFER_FIRST_REGISTERED,
) -> ManifestSnapshot:
    """Build a snapshot the way the registry does."""
    ownership, conflicts = resolve_conflicts(manifests, policy)
    return ManifestSnapshot(
        manifests=tuple(manifests),
        ownership=ownership,
        conflicts=frozenset(conflicts),
        policy=policy,
    )


def with_values(tree: BranchNode, values: dict) -> BranchNode:
    """
    Copy a tree with leaf values filled in.

    Keys are full leaf paths or bare semantic IDs; a path key wins.
    """

    def fill(node, prefix):
        path = prefix + (node.semantic_id,)
        if isinstance(node, LeafNode):
            return node.with_value(values.get(path, values.get(node.semantic_id)))
        return BranchNode(
            semantic_id=node.semantic_id,
            cardinality=node.cardinality,
            children=[fill(child, path) for child in node.children],
        )

    return fill(tree, ())


@pytest.fixture
def simple_tree() -> BranchNode:
    """A small canonical tree with one nested branch."""
    return BranchNode(
        semantic_id="urn:root",
        children=[
            LeafNode(
                semantic_id="urn:name",
                cardinality=Cardinality.ONE,
                data_type=DataType.STRING,
            ),
            LeafNode(
                semantic_id="urn:year",
                cardinality=Cardinality.ZERO_TO_ONE,
                data_type=DataType.INTEGER,
            ),
            BranchNode(
                semantic_id="urn:address",
                children=[
                    LeafNode(semantic_id="urn:street", data_type=DataType.STRING),
                    LeafNode(semantic_id="urn:city", data_type=DataType.STRING),
                ],
            ),
        ],
    )


@pytest.fixture
def nameplate_template() -> model.Submodel:
    """A submodel template covering every supported element type."""
    markings = model.SubmodelElementList(
        id_short="Markings",
        type_value_list_element=model.SubmodelElementCollection,
        semantic_id_list_element=ref("urn:marking"),
        semantic_id=ref("urn:markings"),
        value=[
            model.SubmodelElementCollection(
                id_short=None,
                semantic_id=ref("urn:marking"),
                value=[
                    model.Property(
                        id_short="MarkingName",
                        value_type=model.datatypes.String,
                        semantic_id=ref("urn:marking-name"),
                    )
                ],
            ),
            model.SubmodelElementCollection(
                id_short=None,
                semantic_id=ref("urn:marking"),
                value=[
                    model.Property(
                        id_short="MarkingName",
                        value_type=model.datatypes.String,
                        semantic_id=ref("urn:marking-name"),
                    )
                ],
            ),
        ],
    )

    return model.Submodel(
        id_="urn:template:nameplate",
        id_short="Nameplate",
        semantic_id=ref("urn:nameplate"),
        submodel_element=[
            model.Property(
                id_short="ManufacturerName",
                value_type=model.datatypes.String,
                value="template manufacturer",
                semantic_id=ref("urn:manufacturer"),
                qualifier=[multiplicity("One")],
            ),
            model.Property(
                id_short="YearOfConstruction",
                value_type=model.datatypes.Integer,
                semantic_id=ref("urn:year"),
                qualifier=[multiplicity("ZeroToOne")],
            ),
            model.MultiLanguageProperty(
                id_short="ProductDesignation",
                value=model.MultiLanguageTextType({"en": "template", "de": "Vorlage"}),
                semantic_id=ref("urn:designation"),
            ),
            model.Range(
                id_short="Temperature",
                value_type=model.datatypes.Double,
                semantic_id=ref("urn:temperature"),
            ),
            model.SubmodelElementCollection(
                id_short="Address",
                semantic_id=ref("urn:address"),
                value=[
                    model.Property(
                        id_short="Street",
                        value_type=model.datatypes.String,
                        semantic_id=ref("urn:street"),
                        qualifier=[multiplicity("One")],
                    ),
                    model.Property(
                        id_short="City",
                        value_type=model.datatypes.String,
                        semantic_id=ref("urn:city"),
                    ),
                ],
            ),
            markings,
            model.File(
                id_short="Logo",
                content_type="image/png",
                semantic_id=ref("urn:logo"),
            ),
            model.Property(
                id_short="Untracked",
                value_type=model.datatypes.String,
                value="kept",
            ),
        ],
    )


@pytest.fixture
def contacts_template() -> model.Submodel:
    """A submodel template whose elements may occur several times."""
    return model.Submodel(
        id_="urn:template:contacts",
        id_short="Contacts",
        semantic_id=ref("urn:contacts"),
        submodel_element=[
            model.SubmodelElementCollection(
                id_short="Contact",
                semantic_id=ref("urn:contact"),
                qualifier=[multiplicity("ZeroToMany")],
                value=[
                    model.Property(
                        id_short="ContactName",
                        value_type=model.datatypes.String,
                        semantic_id=ref("urn:contact-name"),
                    ),
                    model.Property(
                        id_short="Phone",
                        value_type=model.datatypes.String,
                        semantic_id=ref("urn:phone"),
                    ),
                ],
            ),
            model.Property(
                id_short="Tag",
                value_type=model.datatypes.String,
                semantic_id=ref("urn:tag"),
                qualifier=[multiplicity("ZeroToMany")],
            ),
            model.Property(
                id_short="Untracked",
                value_type=model.datatypes.String,
                value="kept",
            ),
        ],
    )
