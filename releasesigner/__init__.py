#!/usr/bin/python3
# encoding: utf-8
# SPDX-FileCopyrightText: 2024 FC (Fay) Stegerman <flx@obfusk.net>
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
sign android release apks & aabs (zipalign, apksigner, jarsigner)

releasesigner is a CI helper that finds the APK and AAB files a release build
produced, signs them using the android build tools (zipalign + apksigner for
APKs, jarsigner + zipalign for AABs) and reports the signed files (as GitHub
Actions outputs, environment variables, and a job summary when running there).

Files are signed one at a time, in (sorted) discovery order; the first failure
aborts the run.


CLI
===

$ releasesigner [--release-dir DIR] [--signing-key B64] [--key-alias ALIAS]
                [--keystore-password PASS] [--key-password PASS]
                [--build-tools-version VERSION] [--keep-temp|--no-keep-temp]
                [--json] [--verbose]

Inputs not given as options are read from the environment: first the GitHub
Actions input (e.g. $INPUT_KEYALIAS), then the fallback (e.g.
$ANDROID_KEY_ALIAS).  See INPUTS.


API
===

NB: the CLI maps to do_sign().

#>> import releasesigner
#>> report = releasesigner.do_sign(release_dir="app/build/outputs/apk/release",
...                                signing_key=b64_keystore, key_alias="mykey",
...                                keystore_password="top secret")
#>> report.joined_signed_files
'app-release-signed.apk'


Path policy
-----------

>>> import releasesigner as rs
>>> rs.ArtifactType.of("foo/app-release.aab")
<ArtifactType.AAB: 'aab'>
>>> rs.final_signed_name("foo/app-release.apk", rs.ArtifactType.APK)
'foo/app-release-signed.apk'
>>> rs.aligned_name("foo/app-release.aab", rs.ArtifactType.AAB)
'foo/app-release-temp.aab'
>>> try:
...     rs.ArtifactType.of("mapping.txt")
... except rs.ConfigurationError as e:
...     print(e)
Not an apk/aab file: 'mapping.txt'


Signing
-------

>>> import releasesigner as rs
>>> creds = rs.SigningCredentials("key.jks", "mykey", "pw123")
>>> creds
SigningCredentials(keystore='key.jks', key_alias='mykey')
>>> tools = rs.BuildToolset("/sdk/zipalign", "/sdk/apksigner", "/jdk/jarsigner")
>>> def invoke(executable, args):
...     print(executable, *args)
>>> rs.sign_file(rs.ReleaseFile.from_path("app-release.apk"), credentials=creds,
...              toolset=tools, invoke=invoke, console=rs.Console())
Aligning APK file.
/sdk/zipalign -p -f -v 4 app-release.apk app-release-temp.apk
Signing APK file.
/sdk/apksigner sign --ks key.jks --ks-key-alias mykey --ks-pass pass:pw123 --out app-release-signed.apk app-release-temp.apk
'app-release-signed.apk'

>>> creds = rs.SigningCredentials("key.jks", "mykey", "pw123", "kp1")
>>> rs.sign_file(rs.ReleaseFile.from_path("bundle.aab"), credentials=creds,
...              toolset=tools, invoke=invoke, console=rs.Console())
Signing AAB file.
/jdk/jarsigner -keystore key.jks -storepass pw123 -signedjar bundle-temp.aab -keypass kp1 bundle.aab mykey
Aligning AAB file.
/sdk/zipalign -p -f -v 4 bundle-temp.aab bundle-signed.aab
'bundle-signed.aab'


Report
------

>>> import releasesigner as rs
>>> report = rs.SigningReport((rs.SigningResult("a.apk", "a-signed.apk"),
...                            rs.SigningResult("b.aab", "b-signed.aab")))
>>> report.count, report.single_signed_file
(2, None)
>>> report.joined_signed_files
'a-signed.apk:b-signed.aab'
>>> print(rs.summary_markdown(report), end="")
### Signed Release Files
Successfully signed 2 files.
<BLANKLINE>
| Index | Source File | Signed File |
| --- | --- | --- |
| 1 | a.apk | a-signed.apk |
| 2 | b.aab | b-signed.aab |

"""

from __future__ import annotations

import base64
import contextlib
import glob
import os
import shutil
import subprocess
import sys
import uuid

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePath
from typing import (cast, Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional,
                    Sequence, TextIO, Tuple)

import click

__version__ = "0.1.0"
NAME = "releasesigner"

# name          input (INPUT_<NAME>)   fallback environment variable
INPUTS = dict(
    release_dir=("releaseDir", "ANDROID_RELEASE_DIR"),
    signing_key=("signingKey", "ANDROID_SIGNING_KEY"),
    key_alias=("keyAlias", "ANDROID_KEY_ALIAS"),
    keystore_password=("keyStorePassword", "ANDROID_KEYSTORE_PASSWORD"),
    key_password=("keyPassword", "ANDROID_KEY_PASSWORD"),
    build_tools_version=("buildToolsVersion", "ANDROID_BUILD_TOOLS_VERSION"),
)

DEFAULT_RELEASE_DIR = "app/build/outputs/apk/release"
DEFAULT_BUILD_TOOLS_VERSION = "29.0.3"

KEYSTORE_FILENAME = "key.jks"

# page-align uncompressed .so files, overwrite, verbose, 4-byte alignment
ZIPALIGN_ARGS = ("-p", "-f", "-v", "4")

# output name   environment variable
OUTPUTS = dict(
    signedFile="ANDROID_SIGNED_FILE",
    signedFiles="ANDROID_SIGNED_FILES",
    signedFilesCount="ANDROID_SIGNED_FILES_COUNT",
)

MASK = "***"


class ReleaseSignerError(Exception):
    """Base class for errors."""


class ConfigurationError(ReleaseSignerError):
    """Missing or invalid input, build tool, or release file."""


class ToolInvocationError(ReleaseSignerError):
    """External tool could not be run or exited with non-zero status."""

    def __init__(self, message: str, *, tool: str, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.tool = tool
        self.returncode = returncode


class UnexpectedError(ReleaseSignerError):
    """Any other failure (e.g. writing a file)."""


class ArtifactType(Enum):
    """Kind of release file; determined by its extension."""
    APK = "apk"
    AAB = "aab"

    @property
    def suffix(self) -> str:
        return "." + self.value

    @classmethod
    def of(cls, path: str) -> ArtifactType:
        """Raises ConfigurationError for anything but .apk/.aab."""
        for t in cls:
            if path.endswith(t.suffix):
                return t
        raise ConfigurationError(f"Not an apk/aab file: {path!r}")


@dataclass(frozen=True)
class ReleaseSignerBase:
    """Base class for dataclasses."""

    def for_json(self) -> Mapping[str, Any]:
        """Convert to JSON: dict of all attributes not starting with _, plus _type."""
        d = {k: v for k, v in self.__dict__.items() if not k.startswith("_")}
        return dict(_type=self.__class__.__name__, **d)


@dataclass(frozen=True)
class ReleaseFile(ReleaseSignerBase):
    """Release file: path (relative to the release dir, POSIX) and type."""
    path: str
    artifact_type: ArtifactType

    @classmethod
    def from_path(cls, path: str) -> ReleaseFile:
        return cls(path, ArtifactType.of(path))


@dataclass(frozen=True)
class SigningCredentials:
    """Keystore file & key alias; the passwords are never shown by repr()."""
    keystore: str
    key_alias: str
    keystore_password: str = field(repr=False)
    key_password: Optional[str] = field(default=None, repr=False)

    @property
    def has_key_password(self) -> bool:
        return bool(self.key_password and self.key_password.strip())

    def secrets(self) -> Tuple[str, ...]:
        return tuple(s for s in (self.keystore_password, self.key_password) if s)


@dataclass(frozen=True)
class BuildToolset(ReleaseSignerBase):
    """Paths to the zipalign, apksigner & jarsigner executables."""
    zipalign: str
    apksigner: str
    jarsigner: str


@dataclass(frozen=True)
class SigningResult(ReleaseSignerBase):
    """Source file and signed file (both relative to the release dir)."""
    source: str
    signed: str


@dataclass(frozen=True)
class SigningReport(ReleaseSignerBase):
    """Signing results, in the same order as the release files."""
    results: Tuple[SigningResult, ...]

    @property
    def count(self) -> int:
        return len(self.results)

    @property
    def signed_files(self) -> Tuple[str, ...]:
        return tuple(r.signed for r in self.results)

    @property
    def single_signed_file(self) -> Optional[str]:
        """The signed file when there is exactly one, None otherwise."""
        return self.results[0].signed if self.count == 1 else None

    @property
    def joined_signed_files(self) -> str:
        return ":".join(self.signed_files)

    def for_json(self) -> Mapping[str, Any]:
        """Convert to JSON."""
        x = dict(count=self.count, single_signed_file=self.single_signed_file,
                 joined_signed_files=self.joined_signed_files)
        return {**super().for_json(), **x}


@dataclass(frozen=True)
class Inputs:
    """Resolved inputs; see collect_inputs()."""
    release_dir: str
    signing_key: str = field(repr=False)
    key_alias: str
    keystore_password: str = field(repr=False)
    key_password: Optional[str] = field(repr=False)
    build_tools_version: str

    def secrets(self) -> Tuple[str, ...]:
        return tuple(s for s in (self.signing_key, self.keystore_password,
                                 self.key_password) if s)

    def credentials(self, keystore: str) -> SigningCredentials:
        return SigningCredentials(keystore, self.key_alias, self.keystore_password,
                                  self.key_password)


class Console:
    """
    Output for a single run.

    Everything passes through redact() before it is written; when running in
    GitHub Actions, secrets are registered with ::add-mask:: as well and groups,
    debug & error messages use workflow commands.

    >>> from releasesigner import Console
    >>> con = Console(("pw123",))
    >>> con.redact("--ks-pass pass:pw123")
    '--ks-pass pass:***'
    >>> con = Console(("pw123",), github_actions=True)
    ::add-mask::pw123
    >>> with con.group("[1/1] app.apk"):
    ...     con.debug("keystore password: pw123")
    ::group::[1/1] app.apk
    ::debug::keystore password: ***
    ::endgroup::

    """

    def __init__(self, secrets: Iterable[str] = (), *, github_actions: bool = False,
                 verbose: bool = False, err: bool = False) -> None:
        self.github_actions = github_actions
        self.verbose = verbose
        self.err = err
        self._secrets: List[str] = []
        for secret in secrets:
            self.add_secret(secret)

    @classmethod
    def from_environ(cls, environ: Mapping[str, str], *, verbose: bool = False,
                     err: bool = False) -> Console:
        return cls(github_actions=environ.get("GITHUB_ACTIONS") == "true",
                   verbose=verbose or environ.get("RUNNER_DEBUG") == "1", err=err)

    def add_secret(self, secret: Optional[str]) -> None:
        for line in (secret or "").splitlines():
            if not line.strip() or line in self._secrets:
                continue
            self._secrets.append(line)
            if self.github_actions:
                self._echo("::add-mask::" + _escape_data(line))
        self._secrets.sort(key=len, reverse=True)

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, MASK)
        return text

    def info(self, message: str, *, fg: Optional[str] = None) -> None:
        message = self.redact(message)
        self._echo(click.style(message, fg=fg) if fg else message)

    def debug(self, message: str) -> None:
        if self.github_actions:
            self._echo("::debug::" + _escape_data(self.redact(message)))
        elif self.verbose:
            self._echo(self.redact(message))

    def error(self, message: str) -> None:
        message = self.redact(message)
        if self.github_actions:
            self._echo("::error::" + _escape_data(message))
        else:
            end = "" if message.endswith(".") else "."
            click.echo(click.style(f"Error: {message}{end}", fg="red"), err=True)

    @contextlib.contextmanager
    def group(self, title: str) -> Iterator[None]:
        title = self.redact(title)
        if self.github_actions:
            self._echo("::group::" + _escape_data(title))
        else:
            self._echo(click.style(title, bold=True))
        try:
            yield
        finally:
            if self.github_actions:
                self._echo("::endgroup::")

    def _echo(self, message: str) -> None:
        # runners don't have a tty but do render colours
        click.echo(message, err=self.err, color=True if self.github_actions else None)


def _escape_data(s: str) -> str:
    """
    Escape workflow command data.

    >>> from releasesigner import _escape_data
    >>> _escape_data("100%\\ndone")
    '100%25%0Adone'

    """
    return s.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


class ToolInvoker:
    """Runs an external tool and waits for it; non-zero exit status is an error."""

    def __init__(self, console: Console) -> None:
        self.console = console

    def __call__(self, executable: str, args: Sequence[str]) -> None:
        cmd = [executable, *args]
        self.console.info("[command]" + " ".join(cmd))
        try:
            proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                                  text=True, errors="replace", check=False)
        except OSError as e:
            raise ToolInvocationError(f"Unable to run {executable!r}: {e.strerror or e}",
                                      tool=executable) from e
        if proc.stdout:
            self.console.info(proc.stdout.rstrip("\n"))
        if proc.returncode != 0:
            raise ToolInvocationError(
                f"The process {executable!r} failed with exit code {proc.returncode}",
                tool=executable, returncode=proc.returncode)


Invoke = Callable[[str, Sequence[str]], None]


def aligned_name(path: str, artifact_type: ArtifactType) -> str:
    """Intermediate file: aligned (APK) or signed (AAB), not yet final."""
    return f"{path[:-4]}-temp{artifact_type.suffix}"


def final_signed_name(path: str, artifact_type: ArtifactType) -> str:
    return f"{path[:-4]}-signed{artifact_type.suffix}"


def sign_apk(source: str, *, credentials: SigningCredentials, toolset: BuildToolset,
             invoke: Invoke, console: Console, release_dir: str = "",
             keep_temp: bool = True) -> str:
    """
    Sign APK file: zipalign, then apksigner.

    Returns the signed file (relative to release_dir, like source).

    https://developer.android.com/studio/build/building-cmdline#sign_manually
    """
    source_path = release_dir + source
    aligned_file = aligned_name(source_path, ArtifactType.APK)
    signed_file = final_signed_name(source_path, ArtifactType.APK)
    console.info("Aligning APK file.", fg="blue")
    invoke(toolset.zipalign, [*ZIPALIGN_ARGS, source_path, aligned_file])
    console.info("Signing APK file.", fg="blue")
    args = ["sign", "--ks", credentials.keystore, "--ks-key-alias", credentials.key_alias,
            "--ks-pass", f"pass:{credentials.keystore_password}", "--out", signed_file]
    if credentials.has_key_password:
        args.extend(["--key-pass", f"pass:{credentials.key_password}"])
    args.append(aligned_file)
    invoke(toolset.apksigner, args)
    if not keep_temp:
        _remove_temp(aligned_file, console)
    return final_signed_name(source, ArtifactType.APK)


def sign_aab(source: str, *, credentials: SigningCredentials, toolset: BuildToolset,
             invoke: Invoke, console: Console, release_dir: str = "",
             keep_temp: bool = True) -> str:
    """
    Sign AAB file: jarsigner, then zipalign (which must come last).

    Returns the signed file (relative to release_dir, like source).

    NB: unlike apksigner, jarsigner takes the passwords as is (no "pass:") and
    the key alias as the last argument.
    """
    source_path = release_dir + source
    signed_temp_file = aligned_name(source_path, ArtifactType.AAB)
    signed_file = final_signed_name(source_path, ArtifactType.AAB)
    console.info("Signing AAB file.", fg="blue")
    args = ["-keystore", credentials.keystore, "-storepass", credentials.keystore_password,
            "-signedjar", signed_temp_file]
    if credentials.has_key_password:
        args.extend(["-keypass", cast(str, credentials.key_password)])
    args.extend([source_path, credentials.key_alias])
    invoke(toolset.jarsigner, args)
    console.info("Aligning AAB file.", fg="blue")
    invoke(toolset.zipalign, [*ZIPALIGN_ARGS, signed_temp_file, signed_file])
    if not keep_temp:
        _remove_temp(signed_temp_file, console)
    return final_signed_name(source, ArtifactType.AAB)


SIGNERS: Dict[ArtifactType, Callable[..., str]] = {
    ArtifactType.APK: sign_apk,
    ArtifactType.AAB: sign_aab,
}

assert set(SIGNERS) == set(ArtifactType)


def sign_file(release_file: ReleaseFile, **kwargs: Any) -> str:
    """Sign release file using sign_apk() or sign_aab(); returns the signed file."""
    return SIGNERS[release_file.artifact_type](release_file.path, **kwargs)


def _remove_temp(path: str, console: Console) -> None:
    console.debug(f"Removing {path}")
    os.remove(path)


def sign_release_files(files: Sequence[ReleaseFile], *, credentials: SigningCredentials,
                       toolset: BuildToolset, invoke: Invoke, console: Console,
                       release_dir: str = "", keep_temp: bool = True) -> SigningReport:
    """
    Sign release files, one at a time, in order.

    The first failure is raised as is: there is no partial report.
    """
    if not files:
        raise ConfigurationError("Cannot find any apk/aab file.")
    for secret in credentials.secrets():
        console.add_secret(secret)
    total = len(files)
    listing = "\n".join(f"- {f.path}" for f in files)
    console.info(click.style(f"Now sign {total} files:", fg="blue") + f"\n{listing}\n")
    results = []
    for i, release_file in enumerate(files, 1):
        with console.group(f"[{i}/{total}] {release_file.path}"):
            signed = sign_file(release_file, credentials=credentials, toolset=toolset,
                               invoke=invoke, console=console, release_dir=release_dir,
                               keep_temp=keep_temp)
        results.append(SigningResult(release_file.path, signed))
    console.info(f"Successfully signed {total} files.\n", fg="green")
    return SigningReport(tuple(results))


def get_input(name: str, environ: Mapping[str, str]) -> Optional[str]:
    """
    Get input from $INPUT_<NAME> (stripped), falling back to the environment
    variable from INPUTS; blank values are ignored.

    >>> from releasesigner import get_input
    >>> env = dict(INPUT_KEYALIAS=" ", ANDROID_KEY_ALIAS="mykey")
    >>> get_input("key_alias", env)
    'mykey'
    >>> get_input("key_password", env) is None
    True

    """
    input_name, fallback = INPUTS[name]
    value = environ.get("INPUT_" + input_name.upper(), "").strip()
    if not value:
        value = environ.get(fallback, "")
    return value if value.strip() else None


def collect_inputs(environ: Mapping[str, str], **overrides: Optional[str]) -> Inputs:
    """
    Collect inputs; non-blank overrides (e.g. from CLI options) take precedence
    over the environment.

    Raises ConfigurationError when a required input is missing.

    >>> from releasesigner import collect_inputs
    >>> env = dict(INPUT_SIGNINGKEY="S0VZ", ANDROID_KEY_ALIAS="mykey",
    ...            ANDROID_KEYSTORE_PASSWORD="pw123")
    >>> inputs = collect_inputs(env, release_dir="out\\\\release")
    >>> inputs
    Inputs(release_dir='out/release/', key_alias='mykey', build_tools_version='29.0.3')
    >>> collect_inputs({}, key_alias="mykey")
    Traceback (most recent call last):
    ...
    releasesigner.ConfigurationError: Cannot find signingKey/ANDROID_SIGNING_KEY. Check your input in workflow.

    """
    if unknown := set(overrides) - set(INPUTS):
        raise TypeError(f"Unknown input(s): {', '.join(sorted(unknown))}")

    def get(name: str) -> Optional[str]:
        value = overrides.get(name)
        return value if value and value.strip() else get_input(name, environ)

    def required(name: str) -> str:
        if (value := get(name)) is None:
            input_name, fallback = INPUTS[name]
            raise ConfigurationError(f"Cannot find {input_name}/{fallback}. "
                                     "Check your input in workflow.")
        return value

    release_dir = (get("release_dir") or DEFAULT_RELEASE_DIR).replace("\\", "/")
    if not release_dir.endswith("/"):
        release_dir += "/"
    return Inputs(
        release_dir=release_dir,
        signing_key=required("signing_key").strip(),
        key_alias=required("key_alias"),
        keystore_password=required("keystore_password"),
        key_password=get("key_password"),
        build_tools_version=get("build_tools_version") or DEFAULT_BUILD_TOOLS_VERSION,
    )


def write_keystore(inputs: Inputs) -> str:
    """Decode the (base64) signing key and save it as key.jks in the release dir."""
    if not os.path.isdir(inputs.release_dir):
        raise ConfigurationError(f"Cannot find release directory {inputs.release_dir!r}")
    try:
        data = base64.b64decode("".join(inputs.signing_key.split()), validate=True)
    except ValueError as e:     # binascii.Error or non-ASCII
        raise ConfigurationError(f"Cannot decode signingKey: {e}") from e
    keystore = os.path.join(inputs.release_dir, KEYSTORE_FILENAME)
    with open(keystore, "wb") as fh:
        fh.write(data)
    return keystore


def collect_build_tools(version: str, environ: Mapping[str, str], *,
                        console: Console) -> BuildToolset:
    """
    Find zipalign & apksigner in $ANDROID_HOME/build-tools/<version> and
    jarsigner on $PATH.

    Raises ConfigurationError when anything is missing.
    """
    android_home = environ.get("ANDROID_HOME", "")
    if not android_home.strip():
        raise ConfigurationError("Cannot find Android SDK installation. "
                                 "Please setup Android before this action.")
    console.debug(f"Found Android SDK: {android_home}")

    def find(what: str, path: Optional[str], setup: str = "Android") -> str:
        if not path or not os.path.exists(path):
            raise ConfigurationError(f"Cannot find {what}. "
                                     f"Please setup {setup} before this action.")
        console.debug(f"Found {what}: {path}")
        return path

    build_tools = find("Android build tools", os.path.join(android_home, "build-tools", version))
    return BuildToolset(
        zipalign=find("zipalign", os.path.join(build_tools, "zipalign")),
        apksigner=find("apksigner", os.path.join(build_tools, "apksigner")),
        jarsigner=find("jarsigner", shutil.which("jarsigner", path=environ.get("PATH")), "JDK"),
    )


def find_release_files(release_dir: str, *, console: Console) -> Tuple[ReleaseFile, ...]:
    """
    Find *.apk & *.aab files in release_dir (recursively); sorted, relative to
    release_dir, POSIX paths.

    Raises ConfigurationError when there are none.
    """
    patterns = [os.path.join(glob.escape(release_dir), "**", "*" + t.suffix)
                for t in ArtifactType]
    console.debug("Glob patterns:\n" + "\n".join(patterns))
    found = set()
    for pattern in patterns:
        for path in glob.glob(pattern, recursive=True):
            if os.path.isfile(path):
                found.add(PurePath(os.path.relpath(path, release_dir)).as_posix())
    if not found:
        raise ConfigurationError("Cannot find any apk/aab file.")
    return tuple(ReleaseFile.from_path(p) for p in sorted(found))


def signing_outputs(report: SigningReport, release_dir: str, *,
                    cwd: Optional[str] = None) -> Dict[str, str]:
    """
    Output values (see OUTPUTS) with absolute paths; signedFile only when
    exactly one file was signed.

    >>> import releasesigner as rs
    >>> report = rs.SigningReport((rs.SigningResult("a.apk", "a-signed.apk"),))
    >>> for k, v in rs.signing_outputs(report, "out/", cwd="/src").items():
    ...     print(f"{k}={v}")
    signedFile=/src/out/a-signed.apk
    signedFiles=/src/out/a-signed.apk
    signedFilesCount=1

    """
    cwd = os.getcwd() if cwd is None else cwd
    paths = [os.path.join(cwd, release_dir, f) for f in report.signed_files]
    outputs = {}
    if len(paths) == 1:
        outputs["signedFile"] = paths[0]
    outputs["signedFiles"] = ":".join(paths)
    outputs["signedFilesCount"] = str(len(paths))
    return outputs


def export_outputs(report: SigningReport, release_dir: str, environ: Mapping[str, str], *,
                   cwd: Optional[str] = None) -> Dict[str, str]:
    """
    Write outputs to $GITHUB_OUTPUT and the matching environment variables to
    $GITHUB_ENV (when set).
    """
    outputs = signing_outputs(report, release_dir, cwd=cwd)
    output_file, env_file = environ.get("GITHUB_OUTPUT"), environ.get("GITHUB_ENV")
    for name, value in outputs.items():
        if output_file:
            _append_file_command(output_file, name, value)
        if env_file:
            _append_file_command(env_file, OUTPUTS[name], value)
    return outputs


def _append_file_command(path: str, name: str, value: str) -> None:
    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")


def summary_markdown(report: SigningReport) -> str:
    lines = ["### Signed Release Files",
             f"Successfully signed {report.count} files.", "",
             "| Index | Source File | Signed File |", "| --- | --- | --- |"]
    for i, r in enumerate(report.results, 1):
        lines.append(f"| {i} | {r.source} | {r.signed} |")
    return "\n".join(lines) + "\n"


def write_summary(report: SigningReport, environ: Mapping[str, str]) -> bool:
    """Append summary to $GITHUB_STEP_SUMMARY; returns False when not set."""
    if not (path := environ.get("GITHUB_STEP_SUMMARY")):
        return False
    with open(path, "a", encoding="utf-8") as fh:
        fh.write(summary_markdown(report))
    return True


def show_json(obj: ReleaseSignerBase, *, file: TextIO = sys.stdout) -> None:
    """Print as JSON to file (stdout)."""
    import simplejson   # FIXME: casting None to str because of wrong type stub
    simplejson.dump(obj, file, indent=2, sort_keys=True, encoding=cast(str, None),
                    default=json_dump_default, for_json=True)
    print(file=file)


def json_dump_default(obj: Any) -> str:
    """
    Returns serializable versions of enums (their value) for simplejson.dump().

    >>> import io, simplejson
    >>> from releasesigner import json_dump_default, ArtifactType
    >>> out = io.StringIO()
    >>> simplejson.dump(dict(foo=ArtifactType.AAB), out, default=json_dump_default)
    >>> print(out.getvalue())
    {"foo": "aab"}

    """
    if isinstance(obj, Enum):
        return cast(str, obj.value)
    raise TypeError(repr(obj) + " is not JSON serializable")


def do_sign(*, environ: Optional[Mapping[str, str]] = None, console: Optional[Console] = None,
            invoke: Optional[Invoke] = None, keep_temp: bool = True, cwd: Optional[str] = None,
            **overrides: Optional[str]) -> SigningReport:
    """
    Collect inputs & build tools, find release files in the release dir, sign
    them, and export outputs & summary.

    Uses os.environ when environ is None.  Inputs not passed as overrides (see
    INPUTS) are read from environ.

    Raises ConfigurationError, ToolInvocationError, or UnexpectedError (for
    OSError) on failure.
    """
    environ = os.environ if environ is None else environ
    console = Console.from_environ(environ) if console is None else console
    invoke = ToolInvoker(console) if invoke is None else invoke
    inputs = collect_inputs(environ, **overrides)
    for secret in inputs.secrets():
        console.add_secret(secret)
    try:
        keystore = write_keystore(inputs)
        console.add_secret(keystore)
        toolset = collect_build_tools(inputs.build_tools_version, environ, console=console)
        console.info(f"Signing files in {inputs.release_dir[:-1]} with key "
                     f"{inputs.key_alias}...\n", fg="blue")
        files = find_release_files(inputs.release_dir, console=console)
        report = sign_release_files(files, credentials=inputs.credentials(keystore),
                                    toolset=toolset, invoke=invoke, console=console,
                                    release_dir=inputs.release_dir, keep_temp=keep_temp)
        export_outputs(report, inputs.release_dir, environ, cwd=cwd)
        write_summary(report, environ)
    except OSError as e:
        raise UnexpectedError(f"{e.__class__.__name__}: {e}") from e
    return report


@click.command(help="""
    releasesigner - sign android release apks & aabs (zipalign, apksigner,
    jarsigner)

    Inputs not given as options are read from the environment: $INPUT_<NAME>
    first (e.g. $INPUT_KEYALIAS), then $ANDROID_<NAME> (e.g.
    $ANDROID_KEY_ALIAS).
""")
@click.version_option(__version__)
@click.option("--release-dir", metavar="DIR",
              help=f"Where to look for release files [default: {DEFAULT_RELEASE_DIR}].")
@click.option("--signing-key", metavar="B64", help="Keystore (base64).")
@click.option("--key-alias", metavar="ALIAS", help="Key alias.")
@click.option("--keystore-password", metavar="PASS",
              help="Keystore password (prefer $ANDROID_KEYSTORE_PASSWORD).")
@click.option("--key-password", metavar="PASS",
              help="Key password, if different (prefer $ANDROID_KEY_PASSWORD).")
@click.option("--build-tools-version", metavar="VERSION",
              help=f"Android build tools version [default: {DEFAULT_BUILD_TOOLS_VERSION}].")
@click.option("--keep-temp/--no-keep-temp", default=True, show_default=True,
              envvar="RELEASESIGNER_KEEP_TEMP",
              help="Keep intermediate -temp.apk/-temp.aab files.")
@click.option("--json", is_flag=True, help="Print report as JSON (other output to stderr).")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output.")
def cli(*, json: bool, verbose: bool, keep_temp: bool, **kwargs: Optional[str]) -> None:
    console = Console.from_environ(os.environ, verbose=verbose, err=json)
    try:
        report = do_sign(console=console, keep_temp=keep_temp, **kwargs)
    except ReleaseSignerError as e:
        console.error(str(e))
        sys.exit(1)
    if json:
        show_json(report, file=sys.stdout)


def main() -> None:
    """CLI; requires click."""
    cli(prog_name=NAME)


if __name__ == "__main__":
    main()

# vim: set tw=80 sw=4 sts=4 et fdm=marker :
