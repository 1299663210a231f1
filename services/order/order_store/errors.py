"""
Order Service: エラー定義

リポジトリとサービス層が投げる例外。
HTTP レイヤーは例外の種類だけを見てステータスコードに変換する。
"""


class OrderStoreError(Exception):
    """このサービスが投げる全例外の基底クラス"""


class OrderNotFoundError(OrderStoreError):
    """指定 ID の注文が存在しない (または並行して削除された)"""

    def __init__(self, order_id: int):
        super().__init__(f"order {order_id} does not exist")
        self.order_id = order_id


class OrderConflictError(OrderStoreError):
    """生成した ID が既存の注文と衝突した"""

    def __init__(self, order_id: int):
        super().__init__(f"order {order_id} already exists")
        self.order_id = order_id


class InvalidInputError(OrderStoreError):
    """クライアント起因の不正な入力"""


class InvalidStatusError(InvalidInputError):
    def __init__(self, status: str):
        super().__init__(f"unknown status: {status!r}")
        self.status = status


class IllegalTransitionError(InvalidInputError):
    """状態遷移ルールに違反する更新 (出荷済みの再出荷など)"""


class StorageUnavailableError(OrderStoreError):
    """Redis への接続・プロトコルエラー"""


class OrderDecodeError(OrderStoreError):
    """保存済みデータを Order に復元できない"""

    def __init__(self, key: str):
        super().__init__(f"failed to decode order stored at {key}")
        self.key = key
