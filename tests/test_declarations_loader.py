"""Tests for the declaration YAML loader."""

import pytest
from infralayer.core.errors import ValidationError
from infralayer.declarations import load_declarations, parse_declarations
from infralayer.resources import PerIndex, Ref, Splat
from infralayer.resources.builder import build


@pytest.fixture
def declaration_file(tmp_path):
    path = tmp_path / "network.yaml"
    path.write_text("""
resources:
  - kind: aws_vpc
    name: main
    attributes:
      cidr_block: 10.0.0.0/16

  - kind: aws_subnet
    name: public
    count: 2
    attributes:
      vpc_id: {ref: aws_vpc.main, output: id}
      cidr_block: {per_index: [10.0.1.0/24, 10.0.2.0/24]}

  - kind: aws_route_table_association
    name: public
    count: 2
    attributes:
      subnet_id: {ref: "aws_subnet.public[count.index]", output: id}
      route_table_id: rtb-existing

  - kind: custom_thing
    name: all
    attributes:
      subnets: {ref: "aws_subnet.public[*]", output: id}
""")
    return path


class TestLoadDeclarations:
    """Tests for load_declarations."""

    def test_loads_declarations(self, declaration_file):
        declarations = load_declarations(declaration_file)

        assert [d.base_address for d in declarations] == [
            "aws_vpc.main",
            "aws_subnet.public",
            "aws_route_table_association.public",
            "custom_thing.all",
        ]
        assert declarations[1].count == 2

    def test_reference_forms(self, declaration_file):
        declarations = load_declarations(declaration_file)

        assert declarations[1].attributes["vpc_id"] == Ref("aws_vpc.main", "id")
        assert declarations[1].attributes["cidr_block"] == PerIndex(
            ["10.0.1.0/24", "10.0.2.0/24"]
        )
        assert declarations[2].attributes["subnet_id"] == Ref(
            "aws_subnet.public[count.index]", "id"
        )
        assert declarations[3].attributes["subnets"] == Splat("aws_subnet.public", "id")

    def test_loaded_declarations_build(self, declaration_file):
        graph = build(load_declarations(declaration_file))
        assert len(graph) == 6

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="not found"):
            load_declarations(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("resources: [unclosed")
        with pytest.raises(ValidationError, match="Invalid YAML"):
            load_declarations(path)

    def test_example_declaration_loads(self, eks_declaration_path):
        declarations = load_declarations(eks_declaration_path)
        graph = build(declarations)

        assert len(graph) == 17


class TestParseDeclarations:
    """Tests for document structure errors."""

    def test_document_must_be_mapping(self):
        with pytest.raises(ValidationError, match="mapping"):
            parse_declarations(["not", "a", "mapping"])

    def test_resources_must_be_list(self):
        with pytest.raises(ValidationError, match="must be a list"):
            parse_declarations({"resources": {"kind": "aws_vpc"}})

    def test_resource_needs_kind_and_name(self):
        with pytest.raises(ValidationError, match="kind and name"):
            parse_declarations({"resources": [{"kind": "aws_vpc"}]})

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError, match="unknown key"):
            parse_declarations({"resources": [{"kind": "a", "name": "b", "spec": {}}]})

    def test_reference_needs_output(self):
        document = {"resources": [{"kind": "a", "name": "b", "attributes": {"x": {"ref": "a.c"}}}]}
        with pytest.raises(ValidationError, match="exactly 'ref' and 'output'"):
            parse_declarations(document)

    def test_per_index_must_be_list(self):
        document = {
            "resources": [
                {"kind": "a", "name": "b", "count": 1, "attributes": {"x": {"per_index": "v"}}}
            ]
        }
        with pytest.raises(ValidationError, match="per_index"):
            parse_declarations(document)

    def test_attributes_default_to_empty(self):
        declarations = parse_declarations({"resources": [{"kind": "a", "name": "b"}]})
        assert declarations[0].attributes == {}

    def test_nested_references_converted(self):
        document = {
            "resources": [
                {
                    "kind": "a",
                    "name": "b",
                    "attributes": {"route": [{"gateway_id": {"ref": "x.y", "output": "id"}}]},
                }
            ]
        }
        declarations = parse_declarations(document)
        assert declarations[0].attributes["route"][0]["gateway_id"] == Ref("x.y", "id")
