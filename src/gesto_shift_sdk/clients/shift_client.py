from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from ..models import Area, AreaToAreaPayload, Employee, FlowKind, ProductEntry, SyncPayload
from .base import BaseClient, expect_list


def _trim_separator(value: str) -> str:
    return value[:-1] if value.endswith((".", ",")) else value


def wire_product(entry: ProductEntry) -> dict[str, Any]:
    data = entry.wire()
    data["quantity"] = _trim_separator(entry.quantity)
    data["counts"] = [_trim_separator(item) for item in entry.counts]
    return data


@dataclass
class ShiftClient(BaseClient):
    def products_saved(
        self,
        flow: FlowKind,
        area_id: str,
        to_area_id: str | None = None,
    ) -> list[ProductEntry]:
        path = f"/request/products/saved/{flow.value}/{area_id}"
        if to_area_id:
            path = f"{path}/{to_area_id}"
        data = self._request("GET", path, operation="products_saved")
        return [ProductEntry.model_validate(item) for item in expect_list(data, "saved products")]

    def sync(
        self,
        flow: FlowKind,
        products: Iterable[ProductEntry],
        *,
        user_id: str | None,
        area_id: str | None,
    ) -> Any:
        payload = SyncPayload(
            productos=[wire_product(item) for item in products],
            user_id=user_id,
            area_id=area_id,
        )
        return self._request(
            "POST",
            f"/request/sync/{flow.value}",
            json_body=payload.model_dump(mode="json", by_alias=True),
            operation="sync",
        )

    def post_initial(self, *, area_id: str, user_id: str) -> Any:
        return self._request(
            "POST",
            "/request/post/initial",
            json_body={"areaId": area_id, "userId": user_id},
            operation="post_initial",
        )

    def post_final(self, *, area_id: str, user_id: str) -> Any:
        return self._request(
            "POST",
            "/request/post/final",
            json_body={"areaId": area_id, "userId": user_id},
            operation="post_final",
        )

    def send_to_warehouse(self, *, area_id: str) -> Any:
        return self._request("POST", f"/request/send-to-warehouse/{area_id}", operation="send_to_warehouse")

    def post_area_to_area(
        self,
        products: Iterable[ProductEntry],
        *,
        area_id: str,
        user_id: str,
        to_area_id: str,
        to_user_id: str | None = None,
    ) -> Any:
        payload = AreaToAreaPayload(
            productos=[wire_product(item) for item in products],
            user_id=user_id,
            area_id=area_id,
            to_area_id=to_area_id,
            to_user_id=to_user_id,
        )
        return self._request(
            "POST",
            "/request/post/area2area",
            json_body=payload.model_dump(mode="json", by_alias=True),
            operation="post_area2area",
        )

    def list_areas(self) -> list[Area]:
        data = self._request("GET", "/areas-local", operation="list_areas")
        return [Area.model_validate(item) for item in expect_list(data, "areas")]

    def list_employees(self, area_id: str) -> list[Employee]:
        data = self._request("GET", f"/get-employes-by-area/{area_id}", operation="list_employees")
        return [Employee.model_validate(item) for item in expect_list(data, "employees")]

    def active_requests(self) -> list[dict[str, Any]]:
        data = self._request("GET", "/request/list", operation="active_requests")
        return expect_list(data, "active requests")

    def save_observation(self, *, area_id: str, user_id: str, observations: str) -> Any:
        return self._request(
            "POST",
            f"/employe/observation/{area_id}",
            json_body={"selectedResponsable": user_id, "observations": observations},
            operation="save_observation",
        )

    def get_observation(self, area_id: str) -> Any:
        return self._request("GET", f"/employe/observation/{area_id}", operation="get_observation")
