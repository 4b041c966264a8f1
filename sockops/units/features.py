# sockops/units/features.py - Feature units
"""
The three independently enabled socket redirection units.

- SockmapUnit: sock_ops program on the cgroup hook, populates sock_ops_map
- SkmsgUnit:   sk_msg / sk_skb programs attached to sock_ops_map
- KtlsUnit:    sk_msg programs redirecting kTLS traffic to/from the proxy

Kernel ids are resolved while a pipeline runs and handed back on its
PipelineResult, never stored on the unit.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging

from sockops.bpf.attach import AttachController, MSG_VERDICT, STREAM_VERDICT, STREAM_PARSER
from sockops.bpf.compiler import UnitCompiler
from sockops.bpf.loader import Loader
from sockops.bpf.pinfs import PinnedNamespace
from sockops.bpf.pinner import MapPinner
from sockops.bpf.resolver import IdentifierResolver
from sockops.errors import SockopsError
from sockops.units.pipeline import Pipeline, PipelineResult, Step, ABORT, BEST_EFFORT


SOCK_MAP = 'sock_ops_map'
SOCK_KTLS_UP_MAP = 'sock_ops_ktls_up'
SOCK_KTLS_DOWN_MAP = 'sock_ops_ktls_down'

EGRESS = 'egress'
INGRESS = 'ingress'

STATUS_ENABLED = 'enabled'
STATUS_PARTIAL = 'partial'
STATUS_DISABLED = 'disabled'


def map_selector(hint: str) -> Tuple[str, str]:
    """
    Translate a map hint into (program pin whose maps are searched, substring).

    The kTLS maps carry no usable name in bpftool output, so egress and
    ingress pick the sockmap used by the skmsg verdict programs instead.
    """
    if hint == INGRESS:
        return 'bpf_redir_ing', 'sockmap'
    if hint == EGRESS:
        return 'bpf_redir', 'sockmap'
    return 'bpf_redir', hint


@dataclass(frozen=True)
class ProgramSpec:
    """
    One program of a unit: where it comes from and how it is attached.
    """
    source: str
    object: str
    pin: str
    attach_type: Optional[str] = None
    map_hint: Optional[str] = None


@dataclass
class Primitives:
    """
    The building blocks a unit's pipelines are composed from.
    """
    namespace: PinnedNamespace
    compiler: UnitCompiler
    loader: Loader
    resolver: IdentifierResolver
    attacher: AttachController
    pinner: MapPinner


class FeatureUnit:
    """
    Base class for a unit with Disabled/Enabled states.

    There is no persisted intermediate state: a failed enable leaves whatever
    steps completed in place and needs an explicit disable before retrying.
    """

    name = ''
    programs: Tuple[ProgramSpec, ...] = ()

    def __init__(self, primitives: Primitives):
        self.ops = primitives
        self.logger = logging.getLogger(__name__)

    # Pipelines

    def enable_pipeline(self) -> Pipeline:
        ids: Dict[str, int] = {}
        steps = self._compile_steps()
        steps.extend(self._load_attach_steps(ids))
        return Pipeline(self.name, steps, policy=ABORT, ids=ids)

    def disable_pipeline(self) -> Pipeline:
        steps = [self._unload_step(pin) for pin in self.pin_names()]
        return Pipeline(self.name, steps, policy=BEST_EFFORT)

    def enable(self) -> PipelineResult:
        return self.enable_pipeline().run()

    def disable(self) -> PipelineResult:
        return self.disable_pipeline().run()

    def _compile_steps(self) -> List[Step]:
        # Every source is compiled before anything is loaded
        return [
            Step(f"compile {p.source}",
                 lambda p=p: self.ops.compiler.compile(p.source, p.object))
            for p in self.programs
        ]

    def _load_attach_steps(self, ids: Dict[str, int]) -> List[Step]:
        steps = []
        for program in self.programs:
            steps.extend(self._map_attach_steps(program, ids))
        return steps

    def _load_step(self, program: ProgramSpec) -> Step:
        def load():
            obj = self.ops.compiler.object_path(program.object)
            self.ops.loader.load(obj, program.pin)
        return Step(f"load {program.pin}", load)

    def _map_attach_steps(self, program: ProgramSpec, ids: Dict[str, int]) -> List[Step]:
        owner, substring = map_selector(program.map_hint)
        prog_key = f"{program.pin}.prog_id"
        map_key = f"{program.pin}.map_id"

        def resolve_prog():
            ids[prog_key] = self.ops.resolver.program_id(program.pin)

        def resolve_map():
            ids[map_key] = self.ops.resolver.require_map_id(owner, substring)

        def attach():
            self.ops.attacher.attach_to_map(ids[prog_key], ids[map_key], program.attach_type)

        return [
            self._load_step(program),
            Step(f"resolve {program.pin} prog id", resolve_prog),
            Step(f"resolve {program.pin} map id", resolve_map),
            Step(f"attach {program.pin} {program.attach_type}", attach),
        ]

    def _unload_step(self, pin_name: str) -> Step:
        def unload():
            if not self.ops.loader.unload(pin_name):
                raise SockopsError(f"could not remove {pin_name}")
        return Step(f"unload {pin_name}", unload)

    # State

    def pin_names(self) -> List[str]:
        """Names, relative to the map root, of the files an enabled unit owns."""
        return [p.pin for p in self.programs]

    def status(self) -> str:
        present = [pin for pin in self.pin_names() if self.ops.namespace.exists(pin)]
        if not present:
            return STATUS_DISABLED
        if len(present) == len(self.pin_names()):
            return STATUS_ENABLED
        return STATUS_PARTIAL


class SockmapUnit(FeatureUnit):
    """
    sock_ops program on the cgroup hook. Every TCP connect event in the
    cgroup is seen by bpf_sockops, which adds sockets to sock_ops_map.
    """

    name = 'sockmap'
    programs = (
        ProgramSpec('bpf_sockops.c', 'bpf_sockops.o', 'bpf_sockops'),
    )
    map_name = SOCK_MAP

    def _load_attach_steps(self, ids: Dict[str, int]) -> List[Step]:
        program = self.programs[0]
        map_key = f"{self.map_name}.map_id"

        def resolve_map():
            ids[map_key] = self.ops.resolver.require_map_id(program.pin, self.map_name)

        def pin_map():
            self.ops.pinner.pin(self.map_name, ids[map_key])

        return [
            self._load_step(program),
            Step(f"resolve {self.map_name} map id", resolve_map),
            Step(f"pin {self.map_name}", pin_map),
            Step(f"attach {program.pin} cgroup",
                 lambda: self.ops.attacher.attach_to_cgroup(program.pin)),
        ]

    def disable_pipeline(self) -> Pipeline:
        program = self.programs[0]

        def detach():
            if not self.ops.namespace.exists(program.pin):
                self.logger.debug(f"{program.pin} not pinned, nothing to detach")
                return
            self.ops.attacher.detach_from_cgroup(program.pin)

        steps = [Step(f"detach {program.pin} cgroup", detach)]
        steps.extend(self._unload_step(pin) for pin in self.pin_names())
        return Pipeline(self.name, steps, policy=BEST_EFFORT)

    def pin_names(self) -> List[str]:
        return [self.programs[0].pin, self.ops.namespace.map_pin_name(self.map_name)]


class SkmsgUnit(FeatureUnit):
    """
    sk_msg and sk_skb programs on sock_ops_map. Once attached, sendmsg and
    sendfile on every socket in the map run through bpf_redir.
    """

    name = 'skmsg'
    programs = (
        ProgramSpec('bpf_redir.c', 'bpf_redir.o', 'bpf_redir', MSG_VERDICT, SOCK_MAP),
        ProgramSpec('bpf_redir_ing.c', 'bpf_redir_ing.o', 'bpf_redir_ing', STREAM_VERDICT, SOCK_MAP),
        ProgramSpec('bpf_redir_parser.c', 'bpf_redir_parser.o', 'bpf_redir_parser', STREAM_PARSER, SOCK_MAP),
    )


class KtlsUnit(FeatureUnit):
    """
    sk_msg programs sending kTLS traffic (as identified by the policy map)
    through the user space proxy before encryption.
    """

    name = 'ktls'
    programs = (
        ProgramSpec('bpf_ktls_up.c', 'bpf_ktls_up.o', 'bpf_ktls_up', MSG_VERDICT, EGRESS),
        ProgramSpec('bpf_ktls_down.c', 'bpf_ktls_down.o', 'bpf_ktls_down', MSG_VERDICT, INGRESS),
    )
    map_names = (SOCK_KTLS_UP_MAP, SOCK_KTLS_DOWN_MAP)

    def disable_pipeline(self, purge_maps: bool = False) -> Pipeline:
        """
        Args:
            purge_maps: Also remove the kTLS maps pinned in the globals area
        """
        pins = super().pin_names()
        if purge_maps:
            pins.extend(self.ops.namespace.map_pin_name(m) for m in reversed(self.map_names))
        return Pipeline(self.name, [self._unload_step(pin) for pin in pins], policy=BEST_EFFORT)

    def disable(self, purge_maps: bool = False) -> PipelineResult:
        return self.disable_pipeline(purge_maps=purge_maps).run()


UNIT_CLASSES = {
    SockmapUnit.name: SockmapUnit,
    SkmsgUnit.name: SkmsgUnit,
    KtlsUnit.name: KtlsUnit,
}
