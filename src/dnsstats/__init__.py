"""dnsstats package"""
