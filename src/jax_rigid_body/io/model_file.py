"""Reading and writing model description documents.

Two renditions of the same document are supported:

* JSON, the native format. Enumerations are externally tagged, e.g.
  ``"joint_type": "Pz"``, ``{"Suspension": {...}}`` or ``{"Box": {...}}``,
  and a root joint has ``"parent": null``.
* XML, one ``<joint>`` element per joint and one ``<system>`` element per
  force model, with numeric lists as space-separated attributes.

Both round-trip every declared field exactly.
"""

import dataclasses
import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

from lxml import etree

from ..core import description as desc
from ..core.model import MechanismModel, ModelError, build_model

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_SYSTEM_TYPES = {tag: cls for cls, tag in desc.SYSTEM_TAGS.items()}
_MESH_TYPES = {tag: cls for cls, tag in desc.MESH_TAGS.items()}


def _floats(values, count: int, what: str) -> tuple:
    values = tuple(float(v) for v in values)
    if len(values) != count:
        raise ModelError(f"{what} must have {count} components, got {len(values)}")
    return values


def _record(cls, fields: Dict[str, Any], what: str):
    names = {f.name for f in dataclasses.fields(cls)}
    unknown = set(fields) - names
    missing = names - set(fields)
    if unknown or missing:
        raise ModelError(f"{what}: unexpected fields {sorted(unknown)}, missing fields {sorted(missing)}")
    return cls(**{
        name: value if name == "joint" else float(value)
        for name, value in fields.items()
    })


# JSON

def _transform_from_dict(data: Dict[str, Any], what: str) -> desc.TransformDef:
    return desc.TransformDef(
        position=_floats(data["position"], 3, f"{what} position"),
        quaternion=_floats(data["quaternion"], 4, f"{what} quaternion"),
    )


def _transform_to_dict(transform: desc.TransformDef) -> Dict[str, Any]:
    return {"position": list(transform.position), "quaternion": list(transform.quaternion)}


def _tagged(data: Dict[str, Any], what: str):
    if not isinstance(data, dict) or len(data) != 1:
        raise ModelError(f"{what} must be an object with exactly one tag, got {data!r}")
    return next(iter(data.items()))


def _mesh_from_dict(data: Dict[str, Any], joint: str) -> desc.MeshDef:
    tag, fields = _tagged(data["mesh_type"], f"Mesh type of joint '{joint}'")
    if tag not in _MESH_TYPES:
        raise ModelError(f"Joint '{joint}' has a mesh of unknown type '{tag}'")
    if _MESH_TYPES[tag] is desc.BoxDef:
        mesh_type = desc.BoxDef(_floats(fields["half_extents"], 3, f"Box of joint '{joint}'"))
    else:
        mesh_type = desc.CylinderDef(height=float(fields["height"]), radius=float(fields["radius"]))
    return desc.MeshDef(
        mesh_type=mesh_type,
        transform=_transform_from_dict(data["transform"], f"Mesh of joint '{joint}'"),
        color=_floats(data["color"], 4, f"Mesh color of joint '{joint}'"),
    )


def _mesh_to_dict(mesh: desc.MeshDef) -> Dict[str, Any]:
    return {
        "mesh_type": {desc.MESH_TAGS[type(mesh.mesh_type)]: dataclasses.asdict(mesh.mesh_type)},
        "transform": _transform_to_dict(mesh.transform),
        "color": list(mesh.color),
    }


def _joint_from_dict(data: Dict[str, Any]) -> desc.JointDef:
    name = data["name"]
    inertia = data["inertia"]
    return desc.JointDef(
        name=name,
        joint_type=data["joint_type"],
        parent=data.get("parent"),
        transform=_transform_from_dict(data["transform"], f"Joint '{name}'"),
        inertia=desc.InertiaDef(
            mass=float(inertia["mass"]),
            center_of_mass=_floats(inertia["center_of_mass"], 3, f"Center of mass of joint '{name}'"),
            inertia=_floats(inertia["inertia"], 6, f"Inertia of joint '{name}'"),
        ),
        meshes=tuple(_mesh_from_dict(mesh, name) for mesh in data.get("meshes", [])),
    )


def _joint_to_dict(joint: desc.JointDef) -> Dict[str, Any]:
    return {
        "name": joint.name,
        "joint_type": joint.joint_type,
        "parent": joint.parent,
        "transform": _transform_to_dict(joint.transform),
        "inertia": {
            "mass": joint.inertia.mass,
            "center_of_mass": list(joint.inertia.center_of_mass),
            "inertia": list(joint.inertia.inertia),
        },
        "meshes": [_mesh_to_dict(mesh) for mesh in joint.meshes],
    }


def _system_from_dict(data: Dict[str, Any]) -> desc.SystemDef:
    tag, fields = _tagged(data["system_type"], "System type")
    if tag not in _SYSTEM_TYPES:
        raise ModelError(f"Unknown system type '{tag}'")
    return _record(_SYSTEM_TYPES[tag], fields, f"{tag} system")


def _system_to_dict(system: desc.SystemDef) -> Dict[str, Any]:
    return {"system_type": {desc.SYSTEM_TAGS[type(system)]: dataclasses.asdict(system)}}


def model_def_from_dict(data: Dict[str, Any]) -> desc.ModelDef:
    """Decode a JSON-style document (as loaded by ``json``) into a ModelDef."""
    try:
        return desc.ModelDef(
            name=data["name"],
            joints=tuple(_joint_from_dict(joint) for joint in data["joints"]),
            systems=tuple(_system_from_dict(system) for system in data.get("systems", [])),
        )
    except ModelError:
        raise
    except KeyError as e:
        raise ModelError(f"Model document is missing field {e}") from e
    except (TypeError, ValueError) as e:
        raise ModelError(f"Malformed model document: {e}") from e


def model_def_to_dict(model_def: desc.ModelDef) -> Dict[str, Any]:
    return {
        "joints": [_joint_to_dict(joint) for joint in model_def.joints],
        "name": model_def.name,
        "systems": [_system_to_dict(system) for system in model_def.systems],
    }


def model_def_from_json(text: str) -> desc.ModelDef:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModelError(f"Model document is not valid JSON: {e}") from e
    return model_def_from_dict(data)


def model_def_to_json(model_def: desc.ModelDef) -> str:
    return json.dumps(model_def_to_dict(model_def), indent=2)


# XML

def _format(values) -> str:
    return " ".join(repr(float(v)) for v in values)


def _parse(elem, attribute: str, count: int, what: str) -> tuple:
    text = elem.get(attribute)
    if text is None:
        raise ModelError(f"{what} is missing attribute '{attribute}'")
    return _floats(text.split(), count, f"{what} {attribute}")


def _transform_from_xml(elem, what: str) -> desc.TransformDef:
    transform = elem.find("transform")
    if transform is None:
        return desc.TransformDef()
    return desc.TransformDef(
        position=_parse(transform, "position", 3, what),
        quaternion=_parse(transform, "quaternion", 4, what),
    )


def _transform_to_xml(parent, transform: desc.TransformDef) -> None:
    etree.SubElement(parent, "transform",
                     position=_format(transform.position),
                     quaternion=_format(transform.quaternion))


def _mesh_from_xml(elem, joint: str) -> desc.MeshDef:
    what = f"Mesh of joint '{joint}'"
    box, cylinder = elem.find("box"), elem.find("cylinder")
    if box is not None:
        mesh_type = desc.BoxDef(_parse(box, "half_extents", 3, what))
    elif cylinder is not None:
        mesh_type = desc.CylinderDef(height=_parse(cylinder, "height", 1, what)[0],
                                     radius=_parse(cylinder, "radius", 1, what)[0])
    else:
        raise ModelError(f"{what} has no box or cylinder shape")
    return desc.MeshDef(
        mesh_type=mesh_type,
        transform=_transform_from_xml(elem, what),
        color=_parse(elem, "color", 4, what),
    )


def _mesh_to_xml(parent, mesh: desc.MeshDef) -> None:
    elem = etree.SubElement(parent, "mesh", color=_format(mesh.color))
    if isinstance(mesh.mesh_type, desc.BoxDef):
        etree.SubElement(elem, "box", half_extents=_format(mesh.mesh_type.half_extents))
    else:
        etree.SubElement(elem, "cylinder",
                         height=repr(float(mesh.mesh_type.height)),
                         radius=repr(float(mesh.mesh_type.radius)))
    _transform_to_xml(elem, mesh.transform)


def _joint_from_xml(elem) -> desc.JointDef:
    name = elem.get("name")
    if name is None:
        raise ModelError("Joint element is missing attribute 'name'")
    what = f"Joint '{name}'"
    inertia = elem.find("inertia")
    if inertia is None:
        inertia_def = desc.InertiaDef()
    else:
        inertia_def = desc.InertiaDef(
            mass=_parse(inertia, "mass", 1, what)[0],
            center_of_mass=_parse(inertia, "center_of_mass", 3, what),
            inertia=_parse(inertia, "inertia", 6, what),
        )
    return desc.JointDef(
        name=name,
        joint_type=elem.get("type"),
        parent=elem.get("parent"),
        transform=_transform_from_xml(elem, what),
        inertia=inertia_def,
        meshes=tuple(_mesh_from_xml(mesh, name) for mesh in elem.findall("mesh")),
    )


def _joint_to_xml(parent, joint: desc.JointDef) -> None:
    elem = etree.SubElement(parent, "joint", name=joint.name, type=joint.joint_type)
    if joint.parent is not None:
        elem.set("parent", joint.parent)
    _transform_to_xml(elem, joint.transform)
    etree.SubElement(elem, "inertia",
                     mass=repr(float(joint.inertia.mass)),
                     center_of_mass=_format(joint.inertia.center_of_mass),
                     inertia=_format(joint.inertia.inertia))
    for mesh in joint.meshes:
        _mesh_to_xml(elem, mesh)


def _system_from_xml(elem) -> desc.SystemDef:
    fields = dict(elem.attrib)
    tag = fields.pop("type", None)
    if tag not in _SYSTEM_TYPES:
        raise ModelError(f"Unknown system type '{tag}'")
    return _record(_SYSTEM_TYPES[tag], fields, f"{tag} system")


def _system_to_xml(parent, system: desc.SystemDef) -> None:
    elem = etree.SubElement(parent, "system", type=desc.SYSTEM_TAGS[type(system)])
    for key, value in dataclasses.asdict(system).items():
        elem.set(key, value if key == "joint" else repr(float(value)))


def model_def_from_xml(text: Union[str, bytes]) -> desc.ModelDef:
    if isinstance(text, str):
        text = text.encode("utf-8")
    try:
        root = etree.fromstring(text)
    except etree.XMLSyntaxError as e:
        raise ModelError(f"Model document is not valid XML: {e}") from e
    if root.tag != "model":
        raise ModelError(f"Expected a <model> root element, found <{root.tag}>")
    try:
        return desc.ModelDef(
            name=root.get("name", ""),
            joints=tuple(_joint_from_xml(elem) for elem in root.findall("joint")),
            systems=tuple(_system_from_xml(elem) for elem in root.findall("system")),
        )
    except ModelError:
        raise
    except (TypeError, ValueError) as e:
        raise ModelError(f"Malformed model document: {e}") from e


def model_def_to_xml(model_def: desc.ModelDef) -> str:
    root = etree.Element("model", name=model_def.name)
    for joint in model_def.joints:
        _joint_to_xml(root, joint)
    for system in model_def.systems:
        _system_to_xml(root, system)
    return etree.tostring(root, pretty_print=True, encoding="unicode")


# Files

def load_model_def(path: PathLike) -> desc.ModelDef:
    """Load a model description, choosing the rendition by file suffix (.json or .xml)."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".json":
        model_def = model_def_from_json(path.read_text(encoding="utf-8"))
    elif suffix == ".xml":
        model_def = model_def_from_xml(path.read_bytes())
    else:
        raise ModelError(f"Unsupported model file type '{path.suffix}' for {path}")
    logger.debug("Loaded model '%s' from %s (%d joints, %d systems)",
                 model_def.name, path, len(model_def.joints), len(model_def.systems))
    return model_def


def save_model_def(model_def: desc.ModelDef, path: PathLike) -> None:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".json":
        text = model_def_to_json(model_def)
    elif suffix == ".xml":
        text = model_def_to_xml(model_def)
    else:
        raise ModelError(f"Unsupported model file type '{path.suffix}' for {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.debug("Saved model '%s' to %s", model_def.name, path)


def load_model(path: PathLike, **build_kwargs) -> MechanismModel:
    """Load a model description file and build the MechanismModel.

    Args:
        path: Path to a .json or .xml model document.
        **build_kwargs: Forwarded to ``build_model`` (gravity, initial_positions).

    Returns:
        MechanismModel: The built joint forest.
    """
    return build_model(load_model_def(path), **build_kwargs)
