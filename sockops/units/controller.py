# sockops/units/controller.py - Feature unit lifecycle controller
"""
Entry points enabling and disabling the sockmap, skmsg and kTLS units.

Enable logs and re-raises the first failure; disable never raises.
Different units share no mutable state here and may be driven from
different threads. Calls for the same unit must be serialized by the caller.
"""

from typing import Dict, Optional
import logging

from sockops.bpf.attach import AttachController
from sockops.bpf.cgroup import CgroupMountGate
from sockops.bpf.compiler import ClangCompiler, UnitCompiler
from sockops.bpf.loader import Loader
from sockops.bpf.pinfs import PinnedNamespace
from sockops.bpf.pinner import MapPinner
from sockops.bpf.resolver import BpftoolIntrospector, IdentifierResolver, Introspector
from sockops.bpf.tool import BpfTool, CommandRunner, Runner
from sockops.errors import SockopsError
from sockops.exporters.prometheus import SockopsMetrics
from sockops.units.features import (
    FeatureUnit, KtlsUnit, Primitives, SkmsgUnit, SockmapUnit, UNIT_CLASSES,
)
from sockops.units.pipeline import PipelineResult
from sockops.utils.config import Config


class SockopsController:
    """
    Owns the primitives and the three feature units built from one config.
    """

    def __init__(self, config: Optional[Config] = None, runner: Optional[Runner] = None,
                 compiler: Optional[ClangCompiler] = None,
                 introspector: Optional[Introspector] = None,
                 mount_gate: Optional[CgroupMountGate] = None,
                 metrics: Optional[SockopsMetrics] = None):
        """
        Initialize the controller.

        Args:
            config: Configuration (defaults when omitted)
            runner: Command runner for bpftool, clang and mount
            compiler: Compiler collaborator (clang through ``runner`` by default)
            introspector: Source of program/map descriptions (bpftool by default)
            mount_gate: cgroup2 mount gate (a fresh one by default)
            metrics: Metrics sink (a private registry by default)
        """
        self.config = config or Config()
        self.runner = runner or CommandRunner()
        self.metrics = metrics or SockopsMetrics()
        self.logger = logging.getLogger(__name__)

        cfg = self.config
        self.mount_gate = mount_gate or CgroupMountGate(
            default_root=cfg.get('paths.cgroup_root'),
            mount_binary=cfg.get('tools.mount', 'mount'),
            runner=self.runner,
        )

        self.namespace = PinnedNamespace(cfg.get('paths.map_root'), cfg.get('paths.map_prefix'))
        self.bpftool = BpfTool(
            binary=cfg.get('tools.bpftool', 'bpftool'),
            runner=self.runner,
            timeout=cfg.get('loader.tool_timeout_seconds'),
            metrics=self.metrics,
        )

        bpf_dir = cfg.get('paths.bpf_dir')
        self.compiler = UnitCompiler(
            compiler or ClangCompiler(
                clang=cfg.get('tools.clang', 'clang'),
                include_dirs=[bpf_dir, f"{bpf_dir}/include"],
                extra_flags=cfg.get('compile.extra_flags', []),
                runner=self.runner,
            ),
            bpf_dir=bpf_dir,
            state_dir=cfg.get('paths.state_dir'),
            timeout=cfg.get('compile.timeout_seconds'),
        )

        self.primitives = Primitives(
            namespace=self.namespace,
            compiler=self.compiler,
            loader=Loader(self.bpftool, self.namespace, cfg.get('loader.shared_maps', [])),
            resolver=IdentifierResolver(introspector or BpftoolIntrospector(self.bpftool, self.namespace)),
            attacher=AttachController(self.bpftool, self.namespace, lambda: self.mount_gate.cgroup_root),
            pinner=MapPinner(self.bpftool, self.namespace),
        )

        self.units: Dict[str, FeatureUnit] = {
            name: cls(self.primitives) for name, cls in UNIT_CLASSES.items()
        }

    def unit(self, name: str) -> FeatureUnit:
        try:
            return self.units[name]
        except KeyError:
            raise ValueError(f"Unknown feature unit: {name}") from None

    # Generic transitions

    def enable(self, name: str) -> PipelineResult:
        """
        Enable a unit.

        Raises:
            PipelineError: a step failed; the unit may be partially enabled
        """
        unit = self.unit(name)
        try:
            result = unit.enable()
        except SockopsError as e:
            self.logger.error(str(e))
            self.metrics.record_transition(name, 'enable', False)
            raise

        self.metrics.record_transition(name, 'enable', True)
        return result

    def disable(self, name: str, **kwargs) -> PipelineResult:
        unit = self.unit(name)
        result = unit.disable(**kwargs)
        self.metrics.record_transition(name, 'disable', result.ok)
        return result

    def status(self) -> Dict[str, str]:
        return {name: unit.status() for name, unit in self.units.items()}

    # Public entry points

    def ensure_cgroup_mounted(self, path: str = '') -> bool:
        return self.mount_gate.ensure_mounted(path)

    def sockmap_enable(self) -> PipelineResult:
        """
        Compile the sockops program, pin sock_ops_map and attach the program
        to the cgroup. After this all TCP connect events in the cgroup are
        filtered by bpf_sockops.
        """
        result = self.enable(SockmapUnit.name)
        map_id = result.ids.get(f"{SockmapUnit.map_name}.map_id")
        self.logger.info(f"Sockmap Enabled: bpf_sockops loaded, {SockmapUnit.map_name} map_id {map_id}")
        return result

    def sockmap_disable(self) -> PipelineResult:
        """
        Detach bpf_sockops from the cgroup and remove its pins. "Unload"
        here means deleting the pin files; the kernel frees the objects.
        """
        result = self.disable(SockmapUnit.name)
        self.logger.info("Sockmap disabled.")
        return result

    def skmsg_enable(self) -> PipelineResult:
        """
        Compile the SK_MSG/SK_SKB programs and attach them to sock_ops_map.
        """
        result = self.enable(SkmsgUnit.name)
        self.logger.info("Sockmsg Enabled, bpf_redir loaded")
        return result

    def skmsg_disable(self) -> PipelineResult:
        result = self.disable(SkmsgUnit.name)
        self.logger.info("Sockmsg Disabled.")
        return result

    def ktls_enable(self) -> PipelineResult:
        """
        Compile and attach the SK_MSG programs redirecting to/from a kTLS
        enabled proxy.
        """
        result = self.enable(KtlsUnit.name)
        self.logger.info("kTLS sockmsg Enabled, bpf_ktls loaded")
        return result

    def ktls_disable(self, purge_maps: bool = False) -> PipelineResult:
        """
        Args:
            purge_maps: Also remove the sock_ops_ktls_up/down maps
        """
        result = self.disable(KtlsUnit.name, purge_maps=purge_maps)
        self.logger.info("kTLS disabled." if purge_maps else "Ktls sockmsg Disabled.")
        return result
