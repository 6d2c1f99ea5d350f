"""CDK parsing: best effort, never raises."""

import re
from typing import Any, Dict, List, Optional, Tuple

from ..errors import BestEffortSkip
from ..logging_config import get_component_logger
from ..models import InfraFormat, Resource, ResourceGraph, ResourceLocation, ScanMetadata, to_property_map
from .hcl import line_of

logger = get_component_logger("parser")

CDK_CONSTRUCT_TYPES = {
    "Bucket": "AWS::S3::Bucket",
    "Function": "AWS::Lambda::Function",
    "Table": "AWS::DynamoDB::Table",
    "Queue": "AWS::SQS::Queue",
    "Topic": "AWS::SNS::Topic",
    "RestApi": "AWS::ApiGateway::RestApi",
    "Distribution": "AWS::CloudFront::Distribution",
    "LoadBalancer": "AWS::ElasticLoadBalancingV2::LoadBalancer",
    "AutoScalingGroup": "AWS::AutoScaling::AutoScalingGroup",
    "Instance": "AWS::EC2::Instance",
    "Vpc": "AWS::EC2::VPC",
    "Subnet": "AWS::EC2::Subnet",
    "SecurityGroup": "AWS::EC2::SecurityGroup",
    "Role": "AWS::IAM::Role",
    "Policy": "AWS::IAM::Policy",
    "User": "AWS::IAM::User",
    "Group": "AWS::IAM::Group",
    "Pipeline": "AWS::CodePipeline::Pipeline",
    "Repository": "AWS::CodeCommit::Repository",
    "Cluster": "AWS::ECS::Cluster",
}

_ES_IMPORT = re.compile(
    r"""import\s+(?:type\s+)?(?:(?P<default_first>[\w$]+)\s*,\s*)?"""
    r"""(?:\{(?P<named>[^}]*)\}|\*\s+as\s+(?P<namespace>[\w$]+)|(?P<default>[\w$]+))"""
    r"""\s+from\s+['"](?P<module>[^'"]+)['"]"""
)
_REQUIRE = re.compile(
    r"""(?:const|let|var)\s+(?:(?P<binding>[\w$]+)|\{(?P<named>[^}]*)\})\s*=\s*"""
    r"""require\(\s*['"](?P<module>[^'"]+)['"]\s*\)"""
)
_NEW = re.compile(r"\bnew\s+([A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*)*)\s*\(")
_ASSIGNED_TO = re.compile(r"(?:(?:const|let|var)\s+|this\.)([A-Za-z_$][\w$]*)\s*(?::\s*[\w$.<>\[\]]+\s*)?=\s*$")
_MEMBER_REF = re.compile(r"(?<![\w$.])([A-Za-z_$][\w$]*)\.[A-Za-z_$][\w$]*")
_NUMBER = re.compile(r"-?\d+(\.\d+)?")
_JS_IDENT = re.compile(r"[A-Za-z_$][\w$]*")
_STRING_LITERAL = re.compile(r"""'(?:\\.|[^'\\\n])*'|"(?:\\.|[^"\\\n])*\"""")
_JS_GLOBALS = {"this", "props", "process", "Math", "JSON", "Object", "Array", "String", "Number", "console"}
_QUOTES = "'\"`"


def is_cdk_module(module: str) -> bool:
    return "@aws-cdk/" in module or "aws-cdk-lib" in module


def cdk_version(module: str) -> str:
    if "aws-cdk-lib" in module:
        return "v2"
    if "@aws-cdk/" in module:
        return "v1"
    return "unknown"


def extract_cdk_imports(content: str) -> Dict[str, Tuple[str, str]]:
    """Local symbol -> (module, exported name) for every symbol imported from a CDK package."""
    imports: Dict[str, Tuple[str, str]] = {}

    def named(names: str, module: str, alias_sep: str) -> None:
        for part in names.split(","):
            part = part.strip()
            if not part:
                continue
            exported, _, local = part.partition(alias_sep)
            exported = exported.replace("type ", "").strip()
            imports[(local or exported).strip()] = (module, exported)

    for m in _ES_IMPORT.finditer(content):
        module = m.group("module")
        if not is_cdk_module(module):
            continue
        if m.group("named") is not None:
            named(m.group("named"), module, " as ")
        for key in ("default_first", "namespace", "default"):
            if m.group(key):
                imports[m.group(key)] = (module, m.group(key))

    for m in _REQUIRE.finditer(content):
        module = m.group("module")
        if not is_cdk_module(module):
            continue
        if m.group("binding"):
            imports[m.group("binding")] = (module, m.group("binding"))
        else:
            named(m.group("named"), module, ":")
    return imports


def map_construct_type(base_name: str, construct_path: str) -> str:
    return CDK_CONSTRUCT_TYPES.get(base_name, f"CDK::{construct_path}")


def _skip_js_string(text: str, pos: int) -> int:
    quote, i, n = text[pos], pos + 1, len(text)
    while i < n:
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return -1
        i += 1
    return -1


def _js_comment_end(text: str, pos: int) -> Optional[int]:
    if text.startswith("//", pos):
        end = text.find("\n", pos)
        return len(text) if end < 0 else end
    if text.startswith("/*", pos):
        end = text.find("*/", pos + 2)
        return len(text) if end < 0 else end + 2
    return None


def split_call_arguments(text: str, open_pos: int) -> Tuple[List[str], int]:
    """Split `(a, b, {c})` starting at open_pos into top-level argument texts."""
    args, depth, i, start, n = [], 0, open_pos, open_pos + 1, len(text)
    while i < n:
        ch = text[i]
        if ch in _QUOTES:
            j = _skip_js_string(text, i)
            if j < 0:
                raise BestEffortSkip(f"unterminated string at line {line_of(text, i)}")
            i = j
            continue
        end = _js_comment_end(text, i)
        if end is not None:
            i = end
            continue
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth == 0:
                tail = text[start:i].strip()
                if tail:
                    args.append(tail)
                return args, i + 1
        elif ch == "," and depth == 1:
            args.append(text[start:i].strip())
            start = i + 1
        i += 1
    raise BestEffortSkip(f"unbalanced call at line {line_of(text, open_pos)}")


class _ObjectLiteralReader:
    """Reads a JS/TS object literal into the PropertyValue union, keeping expressions as text."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def _skip(self) -> None:
        while self.pos < len(self.text):
            if self.text[self.pos] in " \t\r\n":
                self.pos += 1
                continue
            end = _js_comment_end(self.text, self.pos)
            if end is None:
                return
            self.pos = end

    def _peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _raw(self) -> str:
        start, depth = self.pos, 0
        while self.pos < len(self.text):
            ch = self.text[self.pos]
            if ch in _QUOTES:
                j = _skip_js_string(self.text, self.pos)
                if j < 0:
                    raise BestEffortSkip("unterminated string in props")
                self.pos = j
                continue
            if ch in "([{":
                depth += 1
            elif ch in ")]}":
                if depth == 0:
                    break
                depth -= 1
            elif ch == "," and depth == 0:
                break
            self.pos += 1
        return self.text[start:self.pos].strip()

    def value(self) -> Any:
        self._skip()
        start, ch = self.pos, self._peek()
        if ch == "{":
            self.pos += 1
            result: Any = self.object_body()
        elif ch == "[":
            self.pos += 1
            result = self.array_body()
        elif ch and ch in _QUOTES:
            j = _skip_js_string(self.text, self.pos)
            if j < 0:
                raise BestEffortSkip("unterminated string in props")
            result = self.text[self.pos + 1:j - 1]
            self.pos = j
        else:
            raw = self._raw()
            if raw in ("true", "false"):
                return raw == "true"
            if raw in ("null", "undefined"):
                return None
            if _NUMBER.fullmatch(raw):
                return float(raw) if "." in raw else int(raw)
            return raw
        self._skip()
        if self._peek() not in (",", "}", "]", ""):
            self.pos = start
            return self._raw()
        return result

    def array_body(self) -> List[Any]:
        items = []
        while True:
            self._skip()
            ch = self._peek()
            if ch == "]":
                self.pos += 1
                return items
            if not ch:
                raise BestEffortSkip("unterminated array in props")
            if ch == ",":
                self.pos += 1
                continue
            before = self.pos
            items.append(self.value())
            if self.pos == before:
                raise BestEffortSkip(f"unexpected {ch!r} in props")

    def object_body(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        while True:
            self._skip()
            ch = self._peek()
            if ch == "}":
                self.pos += 1
                return result
            if not ch:
                raise BestEffortSkip("unterminated object in props")
            if ch == ",":
                self.pos += 1
                continue
            if ch in _QUOTES:
                j = _skip_js_string(self.text, self.pos)
                if j < 0:
                    raise BestEffortSkip("unterminated key in props")
                key = self.text[self.pos + 1:j - 1]
                self.pos = j
            else:
                m = _JS_IDENT.match(self.text, self.pos)
                if not m:
                    before = self.pos
                    self._raw()  # spread, computed key or method: skip
                    if self.pos == before:
                        raise BestEffortSkip(f"unexpected {ch!r} in props")
                    continue
                key = m.group()
                self.pos = m.end()
            self._skip()
            if self._peek() == ":":
                self.pos += 1
                result[key] = self.value()
            elif self._peek() in (",", "}"):
                result[key] = key  # shorthand property
            else:
                self._raw()


def parse_props(props_text: str) -> Dict[str, Any]:
    """Best-effort object-literal parse; non-literal props yield an empty map."""
    props_text = props_text.strip()
    if not props_text.startswith("{"):
        return {}
    reader = _ObjectLiteralReader(props_text)
    reader.pos = 1
    return reader.object_body()


def _props_dependencies(props_text: str, imports: Dict[str, Tuple[str, str]]) -> List[str]:
    found = [m.group(1) for m in _MEMBER_REF.finditer(_STRING_LITERAL.sub("''", props_text))]
    return list(dict.fromkeys(name for name in found if name not in _JS_GLOBALS and name not in imports))


def _extract_construct(content: str, match: "re.Match[str]", imports: Dict[str, Tuple[str, str]],
                       file_name: str) -> Optional[Tuple[Resource, Optional[str]]]:
    construct_path = match.group(1)
    root = construct_path.split(".")[0]
    if root not in imports:
        return None

    module, exported = imports[root]
    base_name = construct_path.split(".")[-1] if "." in construct_path else exported
    args, _ = split_call_arguments(content, match.end() - 1)

    construct_id = args[1] if len(args) > 1 else ""
    if construct_id[:1] in _QUOTES and construct_id[-1:] == construct_id[:1]:
        construct_id = construct_id[1:-1]
    name = construct_id.strip(_QUOTES) or construct_path

    props_text = args[2] if len(args) > 2 else ""
    props = parse_props(props_text)

    tags: Dict[str, str] = {}
    raw_tags = props.get("tags")
    if isinstance(raw_tags, dict):
        tags = {str(k): str(v) for k, v in raw_tags.items() if isinstance(v, (str, int, float))}

    line_start = content.rfind("\n", 0, match.start()) + 1
    assigned = _ASSIGNED_TO.search(content[line_start:match.start()])
    variable = assigned.group(1) if assigned else None

    metadata: Dict[str, Any] = {
        "cdkConstruct": construct_path,
        "cdkModule": module,
        "cdkVersion": cdk_version(module),
    }
    if variable:
        metadata["variable"] = variable
    if props_text and not props:
        metadata["propsExpression"] = props_text

    resource = Resource(
        type=map_construct_type(base_name, construct_path),
        name=name,
        properties=to_property_map(props),
        metadata=metadata,
        dependencies=_props_dependencies(props_text, imports),
        tags=tags,
        location=ResourceLocation(file=file_name, line=line_of(content, match.start()), block=construct_path),
    )
    return resource, variable


def parse_cdk(content: str, file_name: str) -> ResourceGraph:
    """
    Extract constructs instantiated from CDK imports.

    Any failure, whether one call site or the whole file, only drops the
    resources not yet extracted.
    """
    extracted: List[Tuple[Resource, Optional[str]]] = []
    try:
        imports = extract_cdk_imports(content)
        for match in _NEW.finditer(content):
            try:
                found = _extract_construct(content, match, imports, file_name)
            except (BestEffortSkip, ValueError) as skip:
                logger.debug(f"Skipping CDK construct {match.group(1)} in {file_name}: {skip}")
                continue
            if found is not None:
                extracted.append(found)
    except Exception as e:
        logger.warning(f"CDK parsing of {file_name} stopped early: {e}")

    # Dependencies that name a construct variable are rewritten to that construct's id
    names_by_variable = {variable: resource.name for resource, variable in extracted if variable}
    resources = [
        resource.model_copy(update={
            "dependencies": list(dict.fromkeys(names_by_variable.get(dep, dep) for dep in resource.dependencies)),
        })
        for resource, _ in extracted
    ]

    return ResourceGraph(
        resources=resources,
        metadata=ScanMetadata(
            file_name=file_name,
            file_type="CDK",
            analysis_type=InfraFormat.CDK.value,
        ),
    )
