"""WhatsApp session lifecycle and outbound-message coordination"""
