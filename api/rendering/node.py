"""Render surface for certificate templates.

A ``CertificateNode`` is the live, addressable certificate element: the SVG
element tree produced by the template plus a mutable inline style map that
preview consumers (and the capture stage) write to. A ``RenderDocument``
holds nodes by element id, the same way a page holds elements.
"""

import asyncio
import copy
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

DEFAULT_ELEMENT_ID = "certificate"

_SVG_IMAGE_TAG = f"{{{SVG_NS}}}image"
_SVG_RECT_TAG = f"{{{SVG_NS}}}rect"
_XLINK_HREF = f"{{{XLINK_NS}}}href"

# Inline style properties with an SVG presentation-attribute equivalent
_PRESENTATION_PROPERTIES = ("opacity", "visibility", "display", "overflow")


class InlineStyle:
    """Ordered inline style declarations, read like ``element.style``.

    Unset properties read as the empty string.
    """

    def __init__(self, declarations: dict[str, str] | None = None) -> None:
        self._declarations: dict[str, str] = dict(declarations or {})

    def get_property(self, name: str) -> str:
        return self._declarations.get(name, "")

    def set_property(self, name: str, value: str) -> None:
        if value == "":
            self.remove_property(name)
            return
        self._declarations[name] = value

    def remove_property(self, name: str) -> None:
        self._declarations.pop(name, None)

    def snapshot(self, names: Iterable[str]) -> dict[str, str]:
        """Return the current value of each named property."""
        return {name: self.get_property(name) for name in names}

    def restore(self, snapshot: dict[str, str]) -> None:
        """Write every property in ``snapshot`` back verbatim."""
        for name, value in snapshot.items():
            self.set_property(name, value)

    @property
    def css_text(self) -> str:
        return "; ".join(f"{k}: {v}" for k, v in self._declarations.items())

    def as_dict(self) -> dict[str, str]:
        return dict(self._declarations)

    def __getitem__(self, name: str) -> str:
        return self.get_property(name)

    def __setitem__(self, name: str, value: str) -> None:
        self.set_property(name, value)

    def __contains__(self, name: object) -> bool:
        return name in self._declarations

    def __iter__(self) -> Iterator[str]:
        return iter(self._declarations)

    def __len__(self) -> int:
        return len(self._declarations)

    def __repr__(self) -> str:
        return f"InlineStyle({self.css_text!r})"


def _px(value: str) -> str | None:
    value = value.strip()
    if value.endswith("px"):
        value = value[:-2]
    try:
        number = float(value)
    except ValueError:
        return None
    return f"{number:g}"


@dataclass(eq=False)
class CertificateNode:
    """Handle to a rendered certificate element."""

    element_id: str
    root: ET.Element
    width: int
    scroll_height: int
    style: InlineStyle = field(default_factory=InlineStyle)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def images(self) -> list[ET.Element]:
        """Every ``<image>`` descendant, in document order."""
        return list(self.root.iter(_SVG_IMAGE_TAG))

    def find_by_id(self, element_id: str) -> ET.Element | None:
        for element in self.root.iter():
            if element.get("id") == element_id:
                return element
        return None

    def to_svg(self, image_hrefs: Sequence[str | None] | None = None) -> str:
        """Serialize the node with its inline style applied to the root.

        Args:
            image_hrefs: Replacement hrefs aligned with ``images()``. ``None``
                entries drop that image from the output.

        Returns:
            Standalone SVG markup.
        """
        root = copy.deepcopy(self.root)
        self._apply_style(root)
        if image_hrefs is not None:
            self._replace_images(root, image_hrefs)
        body = ET.tostring(root, encoding="unicode")
        return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}'

    def _apply_style(self, root: ET.Element) -> None:
        style = self.style

        for dimension in ("width", "height"):
            value = _px(style.get_property(dimension))
            if value is not None:
                root.set(dimension, value)

        for name in _PRESENTATION_PROPERTIES:
            value = style.get_property(name)
            if value:
                root.set(name, value)

        transforms = []
        transform = style.get_property("transform")
        if transform and transform != "none":
            transforms.append(transform)
        scale = style.get_property("scale")
        if scale and scale not in ("1", "none"):
            transforms.append(f"scale({scale})")
        if transforms:
            root.set("transform", " ".join(transforms))
        else:
            root.attrib.pop("transform", None)

        background = style.get_property("background-color")
        if background:
            backdrop = ET.Element(
                _SVG_RECT_TAG,
                {"width": "100%", "height": "100%", "fill": background},
            )
            root.insert(0, backdrop)

    @staticmethod
    def _replace_images(root: ET.Element, image_hrefs: Sequence[str | None]) -> None:
        parents = {child: parent for parent in root.iter() for child in parent}
        images = list(root.iter(_SVG_IMAGE_TAG))
        if len(images) != len(image_hrefs):
            raise ValueError(
                f"Expected {len(images)} image hrefs, got {len(image_hrefs)}"
            )
        for image, href in zip(images, image_hrefs):
            if href is None:
                parents[image].remove(image)
                continue
            image.attrib.pop(_XLINK_HREF, None)
            image.set("href", href)


def image_href(element: ET.Element) -> str:
    """Return an ``<image>`` href, accepting both SVG 2 and xlink forms."""
    return element.get("href") or element.get(_XLINK_HREF) or ""


class RenderDocument:
    """Registry of rendered nodes addressable by element id."""

    def __init__(self) -> None:
        self._nodes: dict[str, CertificateNode] = {}

    def register(self, node: CertificateNode) -> None:
        self._nodes[node.element_id] = node

    def remove(self, element_id: str) -> None:
        self._nodes.pop(element_id, None)

    def get_element_by_id(self, element_id: str) -> CertificateNode | None:
        return self._nodes.get(element_id)

    def __contains__(self, element_id: object) -> bool:
        return element_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)
