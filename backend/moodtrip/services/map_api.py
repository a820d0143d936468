"""
地图搜索服务

支持三种数据源：
- NominatimSearch: OpenStreetMap Nominatim（免费，无需Key）
- AmapSearch: 高德 Web 服务 API
- BaiduSearch: 百度地图 Place API

所有结果统一转换为 CandidatePlace。
"""
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx

from moodtrip.config import Settings
from moodtrip.errors import ProviderUnavailable
from moodtrip.models import CandidatePlace, Location, MapProvider

logger = logging.getLogger(__name__)

DEFAULT_NEARBY_CATEGORIES = ("餐饮", "交通", "住宿")
NATIONWIDE = "全国"

# Nominatim 没有分类搜索，用英文地物类型近似
NOMINATIM_SCENIC_TERMS = ["景点", "park", "自然", "mountain", "lake", "beach", "temple", "garden", "scenic", "viewpoint"]
NOMINATIM_CATEGORY_TERMS = {
    "餐饮": ["restaurant", "cafe", "food"],
    "交通": ["bus_station", "train_station", "parking"],
    "住宿": ["hotel", "hostel", "guest_house"],
}

EARTH_RADIUS = 6371000  # 米


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """两点之间的球面距离（米）"""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _to_float(value: Any) -> Optional[float]:
    """地图接口的数字字段经常是空字符串或空列表"""
    if value in (None, "", []):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


class PlaceSearch(ABC):
    """地点搜索接口"""

    provider: MapProvider

    @abstractmethod
    async def search(self, keywords: Sequence[str], region: str = "") -> List[CandidatePlace]:
        """按关键词搜索景点"""

    @abstractmethod
    async def nearby(
        self,
        lat: float,
        lng: float,
        categories: Sequence[str] = DEFAULT_NEARBY_CATEGORIES
    ) -> List[CandidatePlace]:
        """搜索坐标周边的设施"""


class HttpPlaceSearch(PlaceSearch):
    """基于 httpx 的地图接口公共部分"""

    def __init__(
        self,
        timeout: float = 15.0,
        radius: int = 2000,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 10.0))
        self.radius = radius
        self.transport = transport

    async def _get_json(self, url: str, params: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Any:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.get(url, params=params, headers=headers)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPError as e:
                raise ProviderUnavailable(self.provider.value, f"HTTP 请求错误: {e}")
            except ValueError as e:
                raise ProviderUnavailable(self.provider.value, f"返回内容不是JSON: {e}")

    async def nearby(
        self,
        lat: float,
        lng: float,
        categories: Sequence[str] = DEFAULT_NEARBY_CATEGORIES
    ) -> List[CandidatePlace]:
        """逐个类别搜索，单个类别失败不影响其他类别；补齐缺失的距离"""
        results: List[CandidatePlace] = []
        seen = set()
        failures = 0
        for category in categories:
            try:
                places = await self._nearby_category(lat, lng, category)
            except ProviderUnavailable as e:
                failures += 1
                logger.warning(f"⚠️ 搜索附近{category}失败: {e}")
                continue
            for place in places:
                key = place.id or place.name
                if key in seen:
                    continue
                seen.add(key)
                if place.distance is None and place.location:
                    place = place.model_copy(update={
                        "distance": haversine_distance(lat, lng, place.location.lat, place.location.lng)
                    })
                results.append(place)

        if categories and failures == len(categories):
            raise ProviderUnavailable(self.provider.value, "周边搜索全部失败")
        return results

    @abstractmethod
    async def _nearby_category(self, lat: float, lng: float, category: str) -> List[CandidatePlace]:
        """单个类别的周边搜索"""


class NominatimSearch(HttpPlaceSearch):
    """OpenStreetMap Nominatim"""

    provider = MapProvider.NOMINATIM

    def __init__(self, url: str, user_agent: str, **kwargs):
        super().__init__(**kwargs)
        self.url = url
        # Nominatim 要求请求带上 User-Agent
        self.headers = {"User-Agent": user_agent}

    async def search(self, keywords: Sequence[str], region: str = "") -> List[CandidatePlace]:
        query = " ".join(keywords)
        parts = [query]
        if region and region != NATIONWIDE:
            parts.append(region)
        parts.extend(NOMINATIM_SCENIC_TERMS)

        data = await self._get_json(self.url, {
            "q": " ".join(parts),
            "format": "json",
            "limit": 20,
            "addressdetails": 1,
            "extratags": 1,
            "namedetails": 1,
        }, headers=self.headers)
        return self._parse_places(data)

    async def _nearby_category(self, lat: float, lng: float, category: str) -> List[CandidatePlace]:
        # 半径换算为经纬度范围（bounded viewbox）
        d_lat = self.radius / 111320
        d_lng = self.radius / (111320 * max(math.cos(math.radians(lat)), 0.01))
        viewbox = f"{lng - d_lng},{lat + d_lat},{lng + d_lng},{lat - d_lat}"

        terms = NOMINATIM_CATEGORY_TERMS.get(category, [category])
        places: List[CandidatePlace] = []
        errors: List[ProviderUnavailable] = []
        for term in terms:
            try:
                data = await self._get_json(self.url, {
                    "q": term,
                    "format": "json",
                    "limit": 10,
                    "viewbox": viewbox,
                    "bounded": 1,
                    "addressdetails": 1,
                }, headers=self.headers)
            except ProviderUnavailable as e:
                logger.warning(f"   ✗ 周边搜索 {term} 失败: {e}")
                errors.append(e)
                continue
            places.extend(self._parse_places(data))

        # 所有词都失败才算这个类别失败
        if errors and len(errors) == len(terms):
            raise errors[-1]
        return places

    def _parse_places(self, data: Any) -> List[CandidatePlace]:
        places = []
        if not isinstance(data, list):
            return places
        for item in data:
            lat, lng = _to_float(item.get("lat")), _to_float(item.get("lon"))
            if lat is None or lng is None:
                continue
            address = item.get("address") or {}
            full_address = ", ".join(filter(None, [
                address.get("road"),
                address.get("suburb"),
                address.get("city") or address.get("town") or address.get("village"),
                address.get("state"),
                address.get("country"),
            ]))
            display_name = item.get("display_name") or ""
            places.append(CandidatePlace(
                id=str(item.get("place_id") or item.get("osm_id") or ""),
                name=display_name.split(",")[0].strip() or item.get("name") or "未知地点",
                address=full_address or display_name,
                location=Location(lat=lat, lng=lng),
                description=item.get("type") or item.get("class") or "",
                provider=self.provider,
            ))
        return places


class AmapSearch(HttpPlaceSearch):
    """高德 Web 服务 API"""

    provider = MapProvider.AMAP
    web_api_url = "https://restapi.amap.com/v3"

    def __init__(self, web_key: str, **kwargs):
        super().__init__(**kwargs)
        self.web_key = web_key

    async def _web_api_request(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """调用高德 Web 服务 API，status=0 视为错误"""
        if not self.web_key:
            raise ProviderUnavailable(self.provider.value, "高德 Web API Key 未配置")
        params["key"] = self.web_key
        result = await self._get_json(f"{self.web_api_url}/{endpoint}", params)
        if result.get("status") == "0":
            info = result.get("info", "未知错误")
            infocode = result.get("infocode", "")
            raise ProviderUnavailable(self.provider.value, f"高德 API 错误: {info} (infocode={infocode}, endpoint={endpoint})")
        return result

    async def search(self, keywords: Sequence[str], region: str = "") -> List[CandidatePlace]:
        params = {
            "keywords": " ".join(keywords),
            "offset": 20,
            "page": 1,
            "extensions": "all",
        }
        if region and region != NATIONWIDE:
            params["city"] = region
        result = await self._web_api_request("place/text", params)
        return self._parse_pois(result)

    async def _nearby_category(self, lat: float, lng: float, category: str) -> List[CandidatePlace]:
        result = await self._web_api_request("place/around", {
            "keywords": category,
            "location": f"{lng},{lat}",
            "radius": str(self.radius),
            "offset": 10,
        })
        return self._parse_pois(result)

    def _parse_pois(self, result: Dict[str, Any]) -> List[CandidatePlace]:
        """解析 POI 列表"""
        places = []
        raw_pois = result.get("pois", [])
        if not isinstance(raw_pois, list):
            return places
        for poi in raw_pois:
            biz_ext = poi.get("biz_ext", {}) if isinstance(poi.get("biz_ext"), dict) else {}
            location = None
            lng_lat = _to_text(poi.get("location")).split(",")
            if len(lng_lat) == 2:
                lng, lat = _to_float(lng_lat[0]), _to_float(lng_lat[1])
                if lat is not None and lng is not None:
                    location = Location(lat=lat, lng=lng)
            photos = poi.get("photos") if isinstance(poi.get("photos"), list) else []
            places.append(CandidatePlace(
                id=_to_text(poi.get("id")),
                name=_to_text(poi.get("name")) or "未知地点",
                address=_to_text(poi.get("address")),
                location=location,
                rating=_to_float(biz_ext.get("rating")),
                images=[photo["url"] for photo in photos if isinstance(photo, dict) and photo.get("url")],
                description=_to_text(poi.get("intro")) or _to_text(poi.get("type")),
                provider=self.provider,
                distance=_to_float(poi.get("distance")),
                tel=_to_text(poi.get("tel")),
            ))
        return places


class BaiduSearch(HttpPlaceSearch):
    """百度地图 Place API v2"""

    provider = MapProvider.BAIDU
    search_url = "https://api.map.baidu.com/place/v2/search"

    def __init__(self, ak: str, **kwargs):
        super().__init__(**kwargs)
        self.ak = ak

    async def _place_request(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if not self.ak:
            raise ProviderUnavailable(self.provider.value, "百度地图 AK 未配置")
        params.update({"ak": self.ak, "output": "json"})
        result = await self._get_json(self.search_url, params)
        if result.get("status") != 0:
            raise ProviderUnavailable(self.provider.value, f"百度 API 错误: {result.get('message', '搜索失败')}")
        return result

    async def search(self, keywords: Sequence[str], region: str = "") -> List[CandidatePlace]:
        result = await self._place_request({
            "query": " ".join(keywords),
            "region": region or NATIONWIDE,
            "page_size": 20,
            "page_num": 0,
            "scope": 2,
        })
        return self._parse_results(result.get("results") or [])

    async def _nearby_category(self, lat: float, lng: float, category: str) -> List[CandidatePlace]:
        result = await self._place_request({
            "query": category,
            "location": f"{lat},{lng}",
            "radius": self.radius,
            "page_size": 10,
            "scope": 2,
        })
        return self._parse_results(result.get("results") or [])

    def _parse_results(self, results: List[Dict[str, Any]]) -> List[CandidatePlace]:
        places = []
        for poi in results:
            detail = poi.get("detail_info") or {}
            raw_location = poi.get("location") or {}
            lat, lng = _to_float(raw_location.get("lat")), _to_float(raw_location.get("lng"))
            location = Location(lat=lat, lng=lng) if lat is not None and lng is not None else None
            places.append(CandidatePlace(
                id=_to_text(poi.get("uid")),
                name=_to_text(poi.get("name")) or "未知地点",
                address=_to_text(poi.get("address")),
                location=location,
                rating=_to_float(detail.get("overall_rating")),
                images=[img for img in detail.get("image", []) if isinstance(img, str)] if isinstance(detail.get("image"), list) else [],
                description=_to_text(detail.get("tag")),
                provider=self.provider,
                distance=_to_float(detail.get("distance")),
                tel=_to_text(detail.get("phone")) or _to_text(poi.get("telephone")),
            ))
        return places


def build_place_search(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> PlaceSearch:
    """根据配置创建地图搜索服务，缺少 Key 时退回 Nominatim"""
    common = {"timeout": settings.HTTP_TIMEOUT, "radius": settings.NEARBY_RADIUS, "transport": transport}
    provider = settings.MAP_PROVIDER.lower()

    if provider == MapProvider.AMAP.value and settings.AMAP_WEB_KEY:
        logger.info("🗺️ 地图服务: 高德")
        return AmapSearch(settings.AMAP_WEB_KEY, **common)
    if provider == MapProvider.BAIDU.value and settings.BAIDU_MAP_AK:
        logger.info("🗺️ 地图服务: 百度")
        return BaiduSearch(settings.BAIDU_MAP_AK, **common)
    if provider != MapProvider.NOMINATIM.value:
        logger.warning(f"⚠️ 地图服务 {provider} 未配置 Key，使用 Nominatim")

    logger.info("🗺️ 地图服务: Nominatim")
    return NominatimSearch(settings.NOMINATIM_URL, settings.NOMINATIM_USER_AGENT, **common)
