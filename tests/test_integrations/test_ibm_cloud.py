"""
Tests for hpvs_deploy.integrations.cloud.ibm
==============================================

HTTP traffic is mocked with respx. Covers the request shapes of each
endpoint and the failure classification:

    timeout / connect error / 5xx / 429 → TransientError
    4xx from the token endpoint         → AuthError
    other 4xx                           → RequestRejectedError
"""

import base64
import json

import httpx
import pytest
import respx
from httpx import Response
from pydantic import SecretStr

from hpvs_deploy.core.config import CloudEndpoints, DeploySettings
from hpvs_deploy.core.exceptions import AuthError, RequestRejectedError, TransientError
from hpvs_deploy.core.models import ProvisioningRequest
from hpvs_deploy.integrations.cloud import IBMCloudAPI, MockCloudAPI, create_cloud_api


IAM = "https://iam.example.test"
RC = "https://rc.example.test"
TOKEN = SecretStr("bearer-token")


@pytest.fixture
def api() -> IBMCloudAPI:
    return IBMCloudAPI(endpoints=CloudEndpoints(iam_url=f"{IAM}/", resource_controller_url=RC))


@pytest.fixture
def provisioning_request() -> ProvisioningRequest:
    return ProvisioningRequest(
        instance_name="fhetoolkit-s390x-sample",
        location="dal13",
        resource_group_id="rg-1",
        resource_plan_id="plan-1",
        image_tag="v1.3.1",
        registration=b"-----BEGIN PGP MESSAGE-----",
    )


# =============================================================================
# Test: Token Exchange
# =============================================================================
class TestTokenExchange:
    @respx.mock
    async def test_exchanges_api_key(self, api: IBMCloudAPI) -> None:
        route = respx.post(f"{IAM}/identity/token").mock(
            return_value=Response(200, json={"access_token": "abc", "expires_in": 1200})
        )

        token = await api.exchange_api_key(SecretStr("my-api-key"))

        assert token.token.get_secret_value() == "abc"
        assert token.expires_in == 1200
        body = route.calls.last.request.content.decode()
        assert "apikey=my-api-key" in body
        assert "grant_type=urn%3Aibm%3Aparams%3Aoauth%3Agrant-type%3Aapikey" in body

    @respx.mock
    async def test_rejected_api_key_is_auth_error(self, api: IBMCloudAPI) -> None:
        respx.post(f"{IAM}/identity/token").mock(
            return_value=Response(400, json={"errorMessage": "Provided API key could not be found"})
        )
        with pytest.raises(AuthError) as exc_info:
            await api.exchange_api_key(SecretStr("bad"))
        assert exc_info.value.error_code == "CLOUD_AUTH_FAILED"
        assert "could not be found" in exc_info.value.message

    @respx.mock
    async def test_missing_access_token_is_auth_error(self, api: IBMCloudAPI) -> None:
        respx.post(f"{IAM}/identity/token").mock(return_value=Response(200, json={}))
        with pytest.raises(AuthError):
            await api.exchange_api_key(SecretStr("key"))


# =============================================================================
# Test: Lookups
# =============================================================================
class TestLookups:
    @respx.mock
    async def test_account_id(self, api: IBMCloudAPI) -> None:
        route = respx.get(f"{IAM}/v1/apikeys/details").mock(
            return_value=Response(200, json={"account_id": "acct-1", "iam_id": "x"})
        )

        assert await api.get_account_id(TOKEN, SecretStr("my-api-key")) == "acct-1"
        headers = route.calls.last.request.headers
        assert headers["IAM-ApiKey"] == "my-api-key"
        assert headers["Authorization"] == "Bearer bearer-token"

    @respx.mock
    async def test_default_resource_group_is_preferred(self, api: IBMCloudAPI) -> None:
        route = respx.get(host="rc.example.test", path="/v2/resource_groups").mock(
            return_value=Response(
                200,
                json={"resources": [{"id": "rg-other", "default": False}, {"id": "rg-default", "default": True}]},
            )
        )

        assert await api.get_default_resource_group(TOKEN, "acct-1") == "rg-default"
        assert route.calls.last.request.url.params["account_id"] == "acct-1"

    @respx.mock
    async def test_first_resource_group_when_none_is_default(self, api: IBMCloudAPI) -> None:
        respx.get(host="rc.example.test", path="/v2/resource_groups").mock(
            return_value=Response(200, json={"resources": [{"id": "rg-a"}, {"id": "rg-b"}]})
        )
        assert await api.get_default_resource_group(TOKEN, "acct-1") == "rg-a"

    @respx.mock
    async def test_no_resource_groups(self, api: IBMCloudAPI) -> None:
        respx.get(host="rc.example.test", path="/v2/resource_groups").mock(
            return_value=Response(200, json={"resources": []})
        )
        assert await api.get_default_resource_group(TOKEN, "acct-1") is None


# =============================================================================
# Test: Instance Creation
# =============================================================================
class TestCreateInstance:
    @respx.mock
    async def test_request_body(self, api: IBMCloudAPI, provisioning_request: ProvisioningRequest) -> None:
        route = respx.post(f"{RC}/v2/resource_instances").mock(
            return_value=Response(201, json={"guid": "instance-guid", "id": "crn:v1:..."})
        )

        instance_id = await api.create_instance(TOKEN, provisioning_request)

        assert instance_id == "instance-guid"
        payload = json.loads(route.calls.last.request.content)
        assert payload["name"] == "fhetoolkit-s390x-sample"
        assert payload["target"] == "dal13"
        assert payload["resource_group"] == "rg-1"
        assert payload["resource_plan_id"] == "plan-1"
        assert payload["parameters"]["repositoryTag"] == "v1.3.1"
        assert base64.b64decode(payload["parameters"]["registrationDefinition"]) == b"-----BEGIN PGP MESSAGE-----"

    @respx.mock
    async def test_response_without_id_is_rejected(
        self, api: IBMCloudAPI, provisioning_request: ProvisioningRequest
    ) -> None:
        respx.post(f"{RC}/v2/resource_instances").mock(return_value=Response(202, json={}))
        with pytest.raises(RequestRejectedError) as exc_info:
            await api.create_instance(TOKEN, provisioning_request)
        assert exc_info.value.error_code == "INSTANCE_ID_MISSING"


# =============================================================================
# Test: Failure Classification
# =============================================================================
class TestFailureClassification:
    @pytest.mark.parametrize("status", [500, 502, 503, 429])
    @respx.mock
    async def test_server_errors_are_transient(
        self, api: IBMCloudAPI, provisioning_request: ProvisioningRequest, status: int
    ) -> None:
        respx.post(f"{RC}/v2/resource_instances").mock(return_value=Response(status, text="unavailable"))
        with pytest.raises(TransientError) as exc_info:
            await api.create_instance(TOKEN, provisioning_request)
        assert exc_info.value.details["status_code"] == status

    @pytest.mark.parametrize("status", [400, 403, 404, 422])
    @respx.mock
    async def test_client_errors_are_rejections(
        self, api: IBMCloudAPI, provisioning_request: ProvisioningRequest, status: int
    ) -> None:
        respx.post(f"{RC}/v2/resource_instances").mock(
            return_value=Response(status, json={"errors": [{"message": "plan not available in target"}]})
        )
        with pytest.raises(RequestRejectedError) as exc_info:
            await api.create_instance(TOKEN, provisioning_request)
        assert exc_info.value.status_code == status
        assert "plan not available" in exc_info.value.message

    @respx.mock
    async def test_timeout_is_transient(self, api: IBMCloudAPI) -> None:
        respx.get(f"{IAM}/v1/apikeys/details").mock(side_effect=httpx.ReadTimeout("timed out"))
        with pytest.raises(TransientError) as exc_info:
            await api.get_account_id(TOKEN, SecretStr("k"))
        assert exc_info.value.error_code == "CLOUD_TIMEOUT"

    @respx.mock
    async def test_connect_error_is_transient(self, api: IBMCloudAPI) -> None:
        respx.post(f"{IAM}/identity/token").mock(side_effect=httpx.ConnectError("connection refused"))
        with pytest.raises(TransientError) as exc_info:
            await api.exchange_api_key(SecretStr("k"))
        assert exc_info.value.error_code == "CLOUD_UNREACHABLE"

    @respx.mock
    async def test_non_json_success_is_transient(self, api: IBMCloudAPI) -> None:
        respx.post(f"{IAM}/identity/token").mock(return_value=Response(200, text="<html>maintenance</html>"))
        with pytest.raises(TransientError) as exc_info:
            await api.exchange_api_key(SecretStr("k"))
        assert exc_info.value.error_code == "CLOUD_BAD_RESPONSE"


class TestCloudFactory:
    def test_ibm_backend(self) -> None:
        api = create_cloud_api(DeploySettings(cloud_backend="ibm"))
        assert isinstance(api, IBMCloudAPI)
        assert api.name == "ibm"

    def test_mock_backend(self) -> None:
        assert isinstance(create_cloud_api(DeploySettings(cloud_backend="mock")), MockCloudAPI)
