"""Generation of CRD manifests by running controller-gen over the API packages."""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Sequence

log = logging.getLogger(__name__)


class CRDGenerationError(RuntimeError):
    """Raised when manifests cannot be generated."""


@dataclass(frozen=True)
class CRDName:
    """Singular and plural names of a custom resource."""

    singular: str
    plural: str


@dataclass
class CRDGenerator:
    """One controller-gen run producing manifests for an API package."""

    controller_gen_opts: str
    yaml_dir: str
    crd_api_group: str
    controller_path: str
    crd_names: list[CRDName] = field(default_factory=list)
    customize_yaml: Callable[[CRDGenerator], None] | None = None

    def generate_yaml_manifests(self, controller_gen: str = "controller-gen") -> None:
        """Run controller-gen for this package, then any YAML customisation."""
        output_dir = os.path.abspath(self.yaml_dir)
        work_dir = os.path.abspath(self.controller_path)
        log.info("running binary: %s", controller_gen)
        command = [
            controller_gen,
            self.controller_gen_opts,
            "paths=.",
            f"output:crd:dir={output_dir}",
        ]
        try:
            subprocess.run(command, cwd=work_dir, check=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            log.error("failed to run command %s", exc)
            raise CRDGenerationError(str(exc)) from exc

        if self.customize_yaml is None:
            return
        try:
            self.customize_yaml(self)
        except Exception as exc:
            raise CRDGenerationError(f"customizing YAML: {exc}") from exc


CRD_GENERATORS: tuple[CRDGenerator, ...] = (
    CRDGenerator(
        controller_gen_opts="crd:crdVersions=v1,preserveUnknownFields=false",
        yaml_dir="./generated",
        crd_api_group="comcast.github.io",
        controller_path="../pkg/apis/khcheck/v1",
        crd_names=[CRDName("khcheck", "khchecks")],
    ),
    CRDGenerator(
        controller_gen_opts="crd:crdVersions=v1,preserveUnknownFields=false",
        yaml_dir="./generated",
        crd_api_group="comcast.github.io",
        controller_path="../pkg/apis/khjob/v1",
        crd_names=[CRDName("khjob", "khjobs")],
    ),
    CRDGenerator(
        controller_gen_opts="crd:crdVersions=v1",
        yaml_dir="./generated",
        crd_api_group="comcast.github.io",
        controller_path="../pkg/apis/khstate/v1",
        crd_names=[CRDName("khstate", "khstates")],
    ),
)


def main(argv: Sequence[str] | None = None) -> int:
    """Generate all CRD manifests; exits with an error message on failure."""
    parser = argparse.ArgumentParser(description="Generate CRD manifests.")
    parser.add_argument(
        "-controller-gen",
        "--controller-gen",
        dest="controller_gen",
        default="controller-gen",
        help="controller-gen binary path",
    )
    parser.add_argument(
        "-gojsontoyaml",
        "--gojsontoyaml",
        dest="gojsontoyaml",
        default="gojsontoyaml",
        help="gojsontoyaml binary path",
    )
    args = parser.parse_args(argv)
    for generator in CRD_GENERATORS:
        try:
            generator.generate_yaml_manifests(args.controller_gen)
        except CRDGenerationError as exc:
            raise SystemExit(f"generating YAML manifests: {exc}") from exc
    return 0