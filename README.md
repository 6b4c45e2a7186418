# addonkit

Building blocks for operators that manage cluster addons declaratively.

An *addon object* is a custom resource that carries a common spec
(`version`, `channel`), a common status (`healthy`, `errors`, `phase`) and,
optionally, a list of patches to apply to the rendered manifest. `addonkit`
gives you:

- **`addonkit.api`**: `CommonSpec`, `CommonStatus`, `PatchSpec`, the
  `CommonObject` abstract base and a dictionary-backed `Unstructured` object
  (with `get_nested` and `set_nested`), plus `get_common_spec`,
  `get_common_status`, `set_common_status` and `get_common_name`, which work
  on either kind of object. For an `Unstructured` object the component name is
  its lower-cased `kind`.
- **`addonkit.patches`**: `extract_patches` returns the patches declared on an
  addon object, as `Unstructured` objects. Unstructured objects supply them
  under `spec.patches`; typed objects through a `patch_spec` attribute holding
  a `PatchSpec`, whose entries may be JSON or YAML text, bytes, or mappings.
- **Manifest repositories**: `FSRepository` (`addonkit.repository`, a
  directory on disk), `HTTPRepository` (`addonkit.http_repository`, any
  `http://` or `https://` base URL) and `GitRepository`
  (`addonkit.git_repository`, a git remote, with an optional
  `repo.git//sub/dir` suffix parsed by `parse_git_url`). Each loads
  *channels* (YAML lists of package versions) with `load_channel` and the
  manifests of one package version with `load_manifest`.
- **`addonkit.manifest_loader`**: `new_manifest_loader` picks the right
  repository for a channel location, and `ManifestLoader.resolve_manifest`
  resolves an addon object to its manifest files.
- **`addonkit.status`**: status reporting for reconciled objects:
  `Aggregator`, `KstatusAggregator`, `VersionCheck`, `StatusBuilder`,
  `aggregate_status`, and the `new_basic`, `new_basic_version_checks` and
  `new_kstatus_check` constructors.
- **`addonkit.smoketest`**: an end-to-end smoke test of the guestbook example
  operator, run as the `addonkit-smoketest` command.

## Installation

```
pip install addonkit
```

## Channels and versions

A channel file looks like this:

```yaml
manifests:
- name: nginx
  version: 0.1.0
- name: nginx
  version: 0.2.0
```

```python
from addonkit.repository import Channel, FSRepository

repo = FSRepository("./channels")
channel = repo.load_channel("stable")     # reads ./channels/stable
latest = channel.latest("nginx")          # the 0.2.0 entry
files = repo.load_manifest("nginx", latest.version)
# {"channels/packages/nginx/0.2.0/manifest.yaml": "...", ...}
```

`Channel.from_yaml` parses a channel document directly. `Channel.latest`
considers entries for the named package and entries with no name, and returns
`None` when there are none.

Channel names may only use lower-case letters; package names and version ids
only lower-case letters, digits, `-` and `.`, and none may start with a dot
(see `allowed_channel_name` and `allowed_manifest_id`). Anything else raises
`ValueError` before any file or URL is read. Read failures raise `OSError`,
malformed channels `ValueError`.

`FSRepository.load_manifest` returns every file (not subdirectory) in
`<basedir>/packages/<package>/<version>/`. The HTTP and git repositories
return the single file `packages/<package>/<version>/manifest.yaml`.

Versions are compared with `Version.compare`: an entry naming its package
ranks above one that does not, versions are parsed tolerantly (`v1`, `1`,
`0.1`), and a version that parses ranks above one that does not.

### HTTP repositories

```python
from addonkit.http_repository import HTTPRepository

repo = HTTPRepository("https://channels.example.com/addons")
repo.make_url("packages", "nginx")   # ".../addons/packages/nginx"
```

A `requests.Session` and a timeout (default 60 seconds) may be passed in. Any
response other than 200 raises `OSError`.

### Git repositories

`GitRepository` runs the `git` command, so it must be on the path. The remote
is cloned (with submodules) into `repo_dir`, by default `repo` in the system
temporary directory; if a clone is already there it is fetched, `master` is
checked out and hard-reset. When `~/.ssh/id_rsa` exists, git is told to use
that key for SSH.

## Resolving an addon's manifest

```python
from addonkit.manifest_loader import new_manifest_loader

loader = new_manifest_loader("./channels")
manifests = loader.resolve_manifest(addon_object)   # {path: yaml text}
```

Locations starting with `http://` or `https://` use an `HTTPRepository`;
locations containing `git//` or `.git` use a `GitRepository`; anything else is
a directory. The exact version from the spec is used when one is given;
otherwise the latest version for the component is taken from the named
channel, or from `stable` if none is named. `FLAG_CHANNEL` holds the default
location, `./channels`.

## Status reporting

The status classes talk to the cluster through a client object you supply,
with two methods:

- `get(group, kind, namespace, name)` returns the live object as a mapping or
  `Unstructured`, and raises when it cannot be read;
- `update_status(obj)` writes the addon object's status back.

Objects without a namespace are looked up in the addon object's `namespace`.

- `Aggregator.reconciled(src, objects)` checks every `Service` (it must exist)
  and every `apps` or `extensions` `Deployment` (it must have an `Available`
  condition set to `True`), sets `healthy` and `errors` on `src`, and calls
  `update_status` only when they changed.
- `KstatusAggregator(client, compute).reconciled(src, objects)` calls your
  `compute` function on each live object to get a `KStatus`, combines them
  with `aggregate_status` (in progress or terminating wins, then failed, else
  current; an object whose status cannot be computed counts as not found) and
  sets `phase`.
- `VersionCheck(client, operator_version).version_check(src, objects)`
  returns `True` when the operator is at least the highest
  `addons.k8s.io/min-operator-version` annotation on the objects; otherwise
  it marks `src` unhealthy with an error message and raises `RuntimeError`.
- `new_basic`, `new_basic_version_checks` and `new_kstatus_check` build a
  `StatusBuilder` combining these.

## Smoke test

The `addonkit-smoketest` command runs the end-to-end smoke test of the
guestbook example operator against the cluster your kubeconfig points at: it
installs the CRDs and the operator through `make -C <operator dir>`, applies
the sample resources under `config/samples`, checks that the operator pods
come up, disrupts the workloads, checks recovery, deletes and recreates the
samples, runs operator-specific scenarios, and finally cleans up. Checks are
retried every 5 seconds for up to 2 minutes. The exit code is 0 on success
and 1 when recreation or clean-up cannot be verified.

```
addonkit-smoketest
```

It needs `kubectl` and `make` on the path, and expects the guestbook example
at `../examples/guestbook-operator`. Options:

- `--image-tag`: tag for operator images (default `latest`)
- `--image-repo`: registry to rewrite the default operator images to
- `--ignore-tests`: comma-separated names of tests to skip
- `--skip-custom-scenarios`: skip the operator-specific scenarios

## What this package does not do

`addonkit` provides the pieces around a declarative reconciler, not the
reconciler itself. It does not run a controller or watch the cluster, render
or apply manifests, or apply the patches it extracts; it ships no Kubernetes
client (the status classes use the client you pass in) and does not compute
per-object statuses on its own (`KstatusAggregator` takes that function from
you). The guestbook operator the smoke test deploys is not part of it.

## Running the tests

```
pip install "addonkit[test]"
pytest
```