"""Tests for the render surface: inline styles, node serialization, documents."""

import xml.etree.ElementTree as ET

import pytest

from rendering.node import (
    SVG_NS,
    XLINK_NS,
    CertificateNode,
    InlineStyle,
    RenderDocument,
    image_href,
)

pytestmark = pytest.mark.unit

_SVG = (
    f'<svg xmlns="{SVG_NS}" xmlns:xlink="{XLINK_NS}" id="certificate" '
    'width="1000" height="700" viewBox="0 0 1000 700">'
    '<g id="sigs">'
    '<image id="a" href="https://example.com/a.png" width="10" height="10"/>'
    '<image id="b" xlink:href="https://example.com/b.png" width="10" height="10"/>'
    "</g></svg>"
)


def _node(**kwargs) -> CertificateNode:
    return CertificateNode(
        element_id="certificate",
        root=ET.fromstring(_SVG),
        width=1000,
        scroll_height=700,
        **kwargs,
    )


def _root_of(svg: str) -> ET.Element:
    return ET.fromstring(svg.split("\n", 1)[1])


class TestInlineStyle:
    def test_unset_property_reads_empty(self):
        assert InlineStyle().get_property("transform") == ""

    def test_set_and_remove(self):
        style = InlineStyle()
        style.set_property("opacity", "0.5")
        assert style["opacity"] == "0.5"
        assert "opacity" in style

        style.set_property("opacity", "")
        assert "opacity" not in style
        assert len(style) == 0

    def test_snapshot_restores_verbatim(self):
        style = InlineStyle({"transform": "scale(0.5)", "opacity": "0.8"})
        snapshot = style.snapshot(["transform", "opacity", "position"])
        assert snapshot == {"transform": "scale(0.5)", "opacity": "0.8", "position": ""}

        style["transform"] = "none"
        style["opacity"] = "1"
        style["position"] = "fixed"
        style.restore(snapshot)

        assert style.as_dict() == {"transform": "scale(0.5)", "opacity": "0.8"}

    def test_css_text(self):
        style = InlineStyle({"width": "1000px", "height": "700px"})
        assert style.css_text == "width: 1000px; height: 700px"
        assert list(style) == ["width", "height"]


class TestCertificateNodeToSvg:
    def test_unstyled_output_matches_tree(self):
        root = _root_of(_node().to_svg())

        assert root.get("width") == "1000"
        assert root.get("transform") is None
        assert len(root.findall(f"{{{SVG_NS}}}rect")) == 0

    def test_declaration_prefix(self):
        assert _node().to_svg().startswith('<?xml version="1.0" encoding="UTF-8"?>')

    def test_style_applied_to_root(self):
        node = _node()
        node.style["width"] = "1200px"
        node.style["height"] = "900px"
        node.style["opacity"] = "0.4"
        node.style["transform"] = "rotate(5)"
        node.style["scale"] = "0.5"
        node.style["background-color"] = "#ffffff"

        root = _root_of(node.to_svg())

        assert root.get("width") == "1200"
        assert root.get("height") == "900"
        assert root.get("opacity") == "0.4"
        assert root.get("transform") == "rotate(5) scale(0.5)"
        backdrop = root[0]
        assert backdrop.tag == f"{{{SVG_NS}}}rect"
        assert backdrop.get("fill") == "#ffffff"

    def test_neutral_transform_omitted(self):
        node = _node()
        node.root.set("transform", "scale(0.3)")
        node.style["transform"] = "none"
        node.style["scale"] = "1"

        assert _root_of(node.to_svg()).get("transform") is None

    def test_serialization_does_not_mutate_tree(self):
        node = _node()
        node.style["background-color"] = "#ffffff"
        node.to_svg(["data:image/png;base64,AA", None])

        assert len(node.images()) == 2
        assert node.root.get("transform") is None
        assert node.root[0].get("id") == "sigs"

    def test_image_hrefs_replace_and_drop(self):
        node = _node()
        root = _root_of(node.to_svg([None, "data:image/png;base64,QUJD"]))
        images = list(root.iter(f"{{{SVG_NS}}}image"))

        assert [img.get("id") for img in images] == ["b"]
        assert images[0].get("href") == "data:image/png;base64,QUJD"
        assert images[0].get(f"{{{XLINK_NS}}}href") is None

    def test_image_hrefs_length_mismatch(self):
        with pytest.raises(ValueError, match="Expected 2 image hrefs"):
            _node().to_svg(["data:image/png;base64,AA"])


class TestImageHref:
    def test_reads_both_forms(self):
        images = _node().images()
        assert [image_href(img) for img in images] == [
            "https://example.com/a.png",
            "https://example.com/b.png",
        ]


class TestFindById:
    def test_finds_nested_element(self):
        assert _node().find_by_id("b") is not None
        assert _node().find_by_id("missing") is None


class TestRenderDocument:
    def test_lookup(self):
        document = RenderDocument()
        node = _node()
        document.register(node)

        assert document.get_element_by_id("certificate") is node
        assert "certificate" in document
        assert len(document) == 1

    def test_missing_id(self):
        assert RenderDocument().get_element_by_id("certificate") is None

    def test_remove(self):
        document = RenderDocument()
        document.register(_node())
        document.remove("certificate")
        document.remove("certificate")

        assert len(document) == 0
