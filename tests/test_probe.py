#!/usr/bin/env python3
"""Tests for loadbalancer/probe.py - StatusProbe.

Tests verify:
1. Quick namespace probe is a substring check
2. Services with external addresses short-circuit detection
3. Controller readiness: full, partial, pod-tolerated, not ready
4. Fallback path without MetalLB (unknown / cloud provider)
5. Executor failures and bad JSON never raise
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from common import Err, ExecResult, Ok
from loadbalancer.models import CONTROLLER_NOT_FOUND, IPPool, Provider
from loadbalancer.probe import StatusProbe
from fakes import (
    FakeExecutor,
    empty_cluster,
    fail,
    k8s_list,
    k8s_node,
    k8s_pod,
    k8s_pool,
    k8s_service,
    metallb_cluster,
    ok,
)


class TestProbeNamespace:
    """Test the quick namespace probe."""

    @pytest.mark.parametrize('output', [
        'namespace/metallb-system',
        'namespace/metallb-system\n',
        'metallb-system   Active   3d',
        'NAME STATUS AGE\nmetallb-system Active 1h',
    ])
    def test_output_mentioning_namespace_is_present(self, output):
        """Any output containing the name counts, whatever the format."""
        probe = StatusProbe(FakeExecutor({('namespace',): ok(output)}))
        assert probe.probe_namespace() == Ok(True)

    @pytest.mark.parametrize('output', ['', 'namespace/kube-system', 'No resources found'])
    def test_other_output_is_absent(self, output):
        """Output without the name is absent."""
        probe = StatusProbe(FakeExecutor({('namespace',): ok(output)}))
        assert probe.probe_namespace() == Ok(False)

    def test_executor_failure_is_err(self):
        """Outright failure is reported, not treated as presence."""
        probe = StatusProbe(FakeExecutor({('namespace',): fail('connection refused')}))
        assert probe.probe_namespace() == Err('connection refused')

    def test_custom_namespace(self):
        """The probe checks the configured namespace."""
        executor = FakeExecutor({('namespace',): ok('namespace/lb')})
        assert StatusProbe(executor, namespace='lb').probe_namespace() == Ok(True)
        assert executor.called('get', 'namespace', 'lb')


class TestCheckStatusWithMetalLB:
    """Test detection when the metallb-system namespace exists."""

    def test_service_with_ip_short_circuits(self):
        """A LoadBalancer Service with an IP is enough, regardless of controller state."""
        responses = metallb_cluster(ready=0, desired=2, services=[k8s_service(ip='172.18.200.1')])
        executor = FakeExecutor(responses)

        status = StatusProbe(executor).check_status()

        assert status.is_configured is True
        assert status.provider is Provider.METALLB
        assert status.services[0].external_ip == '172.18.200.1'
        assert not executor.called('deployment')

    def test_service_with_hostname_short_circuits(self):
        """ingress hostname counts as an external address."""
        responses = metallb_cluster(ready=0, desired=1, services=[k8s_service(hostname='lb.local')])
        status = StatusProbe(FakeExecutor(responses)).check_status()
        assert status.is_configured is True

    def test_fully_ready_controller(self):
        """2/2 ready replicas: configured, no advisory error."""
        status = StatusProbe(FakeExecutor(metallb_cluster(ready=2, desired=2))).check_status()

        assert status.is_configured is True
        assert status.provider is Provider.METALLB
        assert status.error is None
        assert status.version == 'v0.14.8'
        assert status.ip_pools == [IPPool('docker-desktop-pool', ['172.18.200.1-172.18.200.100'])]

    def test_partially_ready_controller_is_configured_with_advisory(self):
        """1/3 ready replicas is not a failure, but is reported."""
        status = StatusProbe(FakeExecutor(metallb_cluster(ready=1, desired=3))).check_status()

        assert status.is_configured is True
        assert status.error is not None
        assert '1/3' in status.error

    def test_zero_ready_with_containers_ready_pod_is_tolerated(self):
        """0/2 replicas but a pod with ContainersReady=True counts as ready."""
        pods = [k8s_pod(ready='False', containers_ready='True')]
        executor = FakeExecutor(metallb_cluster(ready=0, desired=2, pods=pods))

        status = StatusProbe(executor).check_status()

        assert status.is_configured is True
        assert status.provider is Provider.METALLB
        assert executor.called('pods', '-l', 'app=metallb,component=controller')

    def test_zero_ready_without_running_pods_fails(self):
        """0/2 replicas and no tolerated pods: not configured, error mentions 0/2."""
        pods = [k8s_pod(phase='Pending', ready='False', containers_ready='False')]
        status = StatusProbe(FakeExecutor(metallb_cluster(ready=0, desired=2, pods=pods))).check_status()

        assert status.is_configured is False
        assert status.provider is Provider.METALLB
        assert '0/2' in status.error

    def test_pods_not_listed_when_replicas_ready(self):
        """The pod fallback only runs when no replica is ready."""
        executor = FakeExecutor(metallb_cluster(ready=1, desired=1))
        StatusProbe(executor).check_status()
        assert not executor.called('pods')

    def test_missing_controller_deployment(self):
        """Namespace without controller deployment."""
        responses = metallb_cluster()
        responses[('deployment',)] = ok('')
        status = StatusProbe(FakeExecutor(responses)).check_status()

        assert status.is_configured is False
        assert status.provider is Provider.METALLB
        assert status.error == CONTROLLER_NOT_FOUND

    def test_unparseable_controller_deployment(self):
        """Garbage deployment output reads as not found."""
        responses = metallb_cluster()
        responses[('deployment',)] = ok('{not json')
        status = StatusProbe(FakeExecutor(responses)).check_status()
        assert status.error == CONTROLLER_NOT_FOUND

    def test_deployment_query_failure_keeps_raw_error(self):
        """Executor failure on the deployment query surfaces verbatim."""
        responses = metallb_cluster()
        responses[('deployment',)] = fail('Unable to connect to the server: EOF')
        status = StatusProbe(FakeExecutor(responses)).check_status()

        assert status.is_configured is False
        assert status.error == 'Unable to connect to the server: EOF'

    def test_pool_failure_yields_empty_list(self):
        """IPAddressPool query failures never fail the probe."""
        responses = metallb_cluster(ready=1, desired=1)
        responses[('ipaddresspools.metallb.io',)] = fail('the server doesn\'t have a resource type')
        status = StatusProbe(FakeExecutor(responses)).check_status()

        assert status.is_configured is True
        assert status.ip_pools == []

    def test_no_pools_is_still_configured(self):
        """A ready controller without pools is configured with an empty list."""
        status = StatusProbe(FakeExecutor(metallb_cluster(ready=1, desired=1, pools=[]))).check_status()
        assert status.is_configured is True
        assert status.ip_pools == []

    def test_detailed_namespace_unparseable(self):
        """Quick probe saw the namespace but the object cannot be parsed."""
        responses = metallb_cluster()
        responses[('namespace', 'json')] = ok('garbage')
        status = StatusProbe(FakeExecutor(responses)).check_status()

        assert status.is_configured is False
        assert status.provider is Provider.ABSENT

    def test_multiple_pools(self):
        """All pools are reported in order."""
        pools = [k8s_pool('a', ['10.0.0.1-10.0.0.5']), k8s_pool('b', ['10.0.1.1-10.0.1.5'])]
        status = StatusProbe(FakeExecutor(metallb_cluster(pools=pools))).check_status()
        assert [p.name for p in status.ip_pools] == ['a', 'b']


class TestCheckStatusWithoutMetalLB:
    """Test detection when metallb-system does not exist."""

    def test_service_with_ip_reports_unknown_provider(self):
        """Some other controller is assigning addresses."""
        executor = FakeExecutor(empty_cluster(services=[k8s_service(ip='34.1.2.3')]))
        status = StatusProbe(executor).check_status()

        assert status.is_configured is True
        assert status.provider is Provider.UNKNOWN
        assert not executor.called('nodes')

    def test_cloud_labels_refine_provider_when_enabled(self):
        """classify_cloud turns unknown into cloud when nodes have cloud labels."""
        responses = empty_cluster(services=[k8s_service(ip='34.1.2.3')])
        responses[('nodes',)] = ok(k8s_list([
            k8s_node(labels={'topology.kubernetes.io/zone': 'us-east1-b'}),
        ]))
        status = StatusProbe(FakeExecutor(responses), classify_cloud=True).check_status()

        assert status.is_configured is True
        assert status.provider is Provider.CLOUD

    def test_cloud_classification_without_labels(self):
        """classify_cloud without cloud labels stays unknown."""
        responses = empty_cluster(services=[k8s_service(ip='34.1.2.3')])
        status = StatusProbe(FakeExecutor(responses), classify_cloud=True).check_status()
        assert status.provider is Provider.UNKNOWN

    def test_nothing_found(self):
        """No namespace and no external addresses: not configured."""
        status = StatusProbe(FakeExecutor(empty_cluster())).check_status()

        assert status.is_configured is False
        assert status.provider is Provider.ABSENT
        assert status.error is None

    def test_pending_services_do_not_count(self):
        """LoadBalancer services still waiting for an address do not count."""
        executor = FakeExecutor(empty_cluster(services=[k8s_service(), k8s_service('api')]))
        assert StatusProbe(executor).check_status().is_configured is False

    def test_non_loadbalancer_services_filtered(self):
        """Items of another type are ignored even if the field selector was not honoured."""
        services = [k8s_service(svc_type='NodePort', ip='10.0.0.1')]
        assert StatusProbe(FakeExecutor(empty_cluster(services=services))).check_status().is_configured is False


class TestCheckStatusFailures:
    """Test that executor problems never escape check_status."""

    def test_executor_unreachable(self):
        """Every call failing gives not configured with the raw error."""
        executor = FakeExecutor({('get',): fail('dial tcp 127.0.0.1:6443: connect: connection refused')})
        status = StatusProbe(executor).check_status()

        assert status.is_configured is False
        assert 'connection refused' in status.error

    def test_executor_raises(self):
        """Exceptions from the executor are caught at the call site."""
        executor = FakeExecutor({('get',): RuntimeError('socket closed')})
        status = StatusProbe(executor).check_status()

        assert status.is_configured is False
        assert 'socket closed' in status.error

    def test_namespace_failure_still_checks_services(self):
        """A failed namespace probe falls through to the services probe."""
        responses = empty_cluster(services=[k8s_service(ip='172.18.200.5')])
        responses[('namespace', 'name')] = fail('timeout')
        status = StatusProbe(FakeExecutor(responses)).check_status()

        assert status.is_configured is True
        assert status.provider is Provider.UNKNOWN

    def test_invalid_services_json_is_absent(self):
        """Non-JSON services output reads as no services."""
        responses = empty_cluster()
        responses[('svc',)] = ok('error: unknown flag')
        status = StatusProbe(FakeExecutor(responses)).check_status()
        assert status.is_configured is False
        assert status.error is None

    def test_failure_with_partial_data_is_parsed(self):
        """success=False with usable JSON is still read."""
        responses = empty_cluster()
        svc_json = ok(k8s_list([k8s_service(ip='172.18.200.9')])).data
        responses[('svc',)] = ExecResult(success=False, data=svc_json, error='Warning: deprecated')
        assert StatusProbe(FakeExecutor(responses)).check_status().is_configured is True

    def test_failure_with_unparseable_data_keeps_error(self):
        """success=False with non-JSON output reports the executor error."""
        responses = empty_cluster()
        responses[('svc',)] = ExecResult(
            success=False,
            data='<html>502 Bad Gateway</html>',
            error='error: the server returned 502',
        )
        status = StatusProbe(FakeExecutor(responses)).check_status()

        assert status.is_configured is False
        assert status.error == 'error: the server returned 502'

    def test_failure_with_unparseable_data_and_no_error(self):
        """Without error text the parse failure is reported instead."""
        responses = empty_cluster()
        responses[('svc',)] = ExecResult(success=False, data='<html>502 Bad Gateway</html>')
        status = StatusProbe(FakeExecutor(responses)).check_status()

        assert status.is_configured is False
        assert 'invalid JSON for ServiceList' in status.error

    def test_malformed_service_does_not_hide_others(self):
        """One Service with a bad ingress is skipped, the rest still count."""
        bad = k8s_service('broken')
        bad['status']['loadBalancer'] = {'ingress': 'oops'}
        services = [bad, k8s_service('web', ip='172.18.200.5')]
        status = StatusProbe(FakeExecutor(empty_cluster(services=services))).check_status()

        assert status.is_configured is True
        assert [s.name for s in status.services] == ['web']

    def test_pool_addresses_not_a_list(self):
        """A pool whose addresses is a string yields no pools."""
        pool = k8s_pool()
        pool['spec']['addresses'] = '10.0.0.1-10.0.0.5'
        status = StatusProbe(FakeExecutor(metallb_cluster(pools=[pool]))).check_status()

        assert status.is_configured is True
        assert status.ip_pools == []

    def test_repeated_calls_return_fresh_values(self):
        """Each call builds a new status object."""
        probe = StatusProbe(FakeExecutor(metallb_cluster()))
        first = probe.check_status()
        second = probe.check_status()
        assert first == second
        assert first is not second
