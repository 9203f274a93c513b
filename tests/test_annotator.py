"""Tests for path annotation of document terms."""

import pytest

from services.annotator import PATH_PREFIX, annotate_document, decode_path, encode_path


def test_encode_uses_prefix_and_json():
    assert encode_path(("Resources", "Subnet")) == 'path:["Resources","Subnet"]'
    assert encode_path(()) == "path:[]"


@pytest.mark.parametrize(
    "encoded",
    [None, "", "template.yml", "path:", "path:{}", "path:[1, 2]", 'path:["a"', "Path:[]"],
)
def test_decode_rejects_foreign_values(encoded):
    assert decode_path(encoded) is None


def test_every_object_node_carries_its_path():
    term = annotate_document(
        {"Resources": {"Subnet": {"Type": "AWS::EC2::Subnet", "Properties": {"CidrBlock": "10.0.0.0/16"}}}}
    )

    assert decode_path(term.provenance) == ()
    resources = term.value["Resources"]
    assert decode_path(resources.provenance) == ("Resources",)
    subnet = resources.value["Subnet"]
    assert decode_path(subnet.value["Type"].provenance) == ("Resources", "Subnet", "Type")
    cidr = subnet.value["Properties"].value["CidrBlock"]
    assert decode_path(cidr.provenance) == ("Resources", "Subnet", "Properties", "CidrBlock")


def test_arrays_are_stamped_but_not_descended():
    term = annotate_document({"Ingress": [{"CidrIp": "0.0.0.0/0"}, "x"]})

    ingress = term.value["Ingress"]
    assert decode_path(ingress.provenance) == ("Ingress",)
    assert ingress.value[0].provenance is None
    assert ingress.value[0].value["CidrIp"].provenance is None
    assert ingress.value[1].provenance is None


def test_non_string_keys_are_skipped():
    term = annotate_document({1: {"a": "b"}, "k": "v"})

    assert term.value[1].provenance is None
    assert decode_path(term.value["k"].provenance) == ("k",)


def test_keys_with_special_characters_round_trip():
    key = 'a.b["c"]/ü'
    term = annotate_document({key: 1})
    assert term.value[key].provenance.startswith(PATH_PREFIX)
    assert decode_path(term.value[key].provenance) == (key,)


def test_scalar_document_is_stamped_with_root():
    term = annotate_document("just a string")
    assert decode_path(term.provenance) == ()


def test_recursive_value_is_rejected():
    value = {"a": {}}
    value["a"]["b"] = value["a"]
    with pytest.raises(TypeError, match="recursive value"):
        annotate_document(value)


def test_shared_value_gets_one_path_per_occurrence():
    shared = {"size": 1}
    term = annotate_document({"base": shared, "copy": shared})

    assert decode_path(term.value["base"].value["size"].provenance) == ("base", "size")
    assert decode_path(term.value["copy"].value["size"].provenance) == ("copy", "size")
