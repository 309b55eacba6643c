"""
Shared — 注文サービスと在庫サービスが共有するイベント契約・チャネル・運用基盤
"""
