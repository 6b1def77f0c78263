"""
ルート探索のエラー定義
"""


class ShadeRouteError(Exception):
    """ルート探索エラーの基底クラス"""


class ProviderError(ShadeRouteError):
    """外部データ（道路・建物）の取得に失敗した"""

    def __init__(self, message: str, status: int = None, url: str = None):
        super().__init__(message)
        self.status = status
        self.url = url


class InvalidInput(ShadeRouteError):
    """出発地・目的地をグラフのノードに対応付けられない"""


class NoRouteFound(ShadeRouteError):
    """出発ノードと目的ノードを結ぶ経路が存在しない"""


class RouteCancelled(ShadeRouteError):
    """呼び出し側によってクエリがキャンセルされた"""
