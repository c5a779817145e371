"""Podman unit: rootless containers allowed to bind web ports."""

from actions import InstallPackagesAction, SysctlAction, WriteFileAction
from config import RunbookConfig
from units import register_unit

SYSCTL_DROPIN = '/etc/sysctl.d/99-unprivileged-ports.conf'


@register_unit
class PodmanUnit:
    """Install podman and lower the unprivileged port floor."""

    name = 'podman'
    description = 'Podman with rootless binding of privileged ports'
    requires_root = True
    expected_runtime = 60

    def get_phases(self, config: RunbookConfig) -> list[tuple[str, object, str]]:
        return [
            ('install_podman', InstallPackagesAction(
                name='podman-packages',
                packages=['podman', 'uidmap', 'slirp4netns'],
            ), 'Install podman'),
            ('unprivileged_ports', WriteFileAction(
                name='unprivileged-ports',
                path=SYSCTL_DROPIN,
                template='99-unprivileged-ports.conf.j2',
                changed_key='sysctl_changed',
            ), f'Allow unprivileged binds from port {config.unprivileged_port_start}'),
            ('apply_sysctl', SysctlAction(name='sysctl', only_if='sysctl_changed'),
             'Apply sysctl settings'),
        ]
